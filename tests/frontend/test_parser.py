"""solhorn front end tests: lexer and parser, FE-001 through FE-012."""

import pytest

from solhorn.frontend import tokenize, parse, TokenType
from solhorn.ast_nodes import (
    Assignment, BinaryOperation, Block, Conditional, ExpressionStatement,
    ForStatement, FunctionCall, IfStatement, IndexAccess, Literal,
    MemberAccess, Return, TupleExpression, UnaryOperation,
    VariableDeclarationStatement, WhileStatement,
)
from solhorn.errors import CompileError, DiagnosticKind


def body_of(source: str, function: str = "f"):
    unit = parse(source)
    for contract in unit.contracts:
        for fn in contract.functions:
            if fn.name == function:
                return fn.body.statements
    raise AssertionError(f"no function {function}")


def wrap(statements: str) -> str:
    return "contract C { uint x; function f() public { " + statements + " } }"


class TestLexer:
    """FE-001: Tokens, literals and comments."""

    def test_keywords_and_identifiers(self):
        tokens = tokenize("contract Vault is Base {}")
        kinds = [t.type for t in tokens]
        assert kinds == [
            TokenType.CONTRACT, TokenType.IDENT, TokenType.IS, TokenType.IDENT,
            TokenType.LBRACE, TokenType.RBRACE, TokenType.EOF,
        ]

    def test_longest_operator_wins(self):
        tokens = tokenize("a >= b => c += 1 ++")
        kinds = [t.type for t in tokens][:-1]
        assert TokenType.GTE in kinds
        assert TokenType.FAT_ARROW in kinds
        assert TokenType.PLUS_ASSIGN in kinds
        assert TokenType.INC in kinds
        assert TokenType.GT not in kinds

    def test_comments_are_dropped(self):
        tokens = tokenize("x // line\n/* block\n comment */ y")
        assert [t.value for t in tokens[:-1]] == ["x", "y"]

    def test_line_and_column(self):
        tokens = tokenize("a\n  b")
        assert tokens[1].location.line == 2
        assert tokens[1].location.column == 3

    def test_number_forms(self):
        tokens = tokenize("1_000 0xFF 2e3")
        assert tokens[0].value == "1000"
        assert tokens[1].type == TokenType.HEX_LIT
        assert tokens[2].value == "2000"

    def test_fractional_literal_rejected(self):
        with pytest.raises(CompileError):
            tokenize("1.5")

    def test_unterminated_comment(self):
        with pytest.raises(CompileError) as exc:
            tokenize("/* never closed")
        assert exc.value.errors[0].kind == DiagnosticKind.SYNTAX_ERROR

    def test_pragma_version_kept_verbatim(self):
        tokens = tokenize("pragma solidity ^0.8.0;")
        assert [t.value for t in tokens[:-1]] == ["pragma", "solidity", "^0.8.0", ";"]


class TestContracts:
    """FE-002: Contract-level declarations."""

    def test_pragma_and_contract(self):
        unit = parse("pragma solidity >=0.7.0 <0.9.0; contract C {}")
        assert unit.pragmas == ["solidity >=0.7.0 <0.9.0"]
        assert unit.contracts[0].name == "C"

    def test_bases_and_kinds(self):
        unit = parse("interface I { function g() external; } "
                     "abstract contract A {} contract B is A, I {}")
        kinds = [(c.name, c.kind, c.is_abstract) for c in unit.contracts]
        assert kinds == [("I", "interface", False), ("A", "contract", True), ("B", "contract", False)]
        assert unit.contract("B").base_names == ["A", "I"]

    def test_state_variables(self):
        unit = parse("contract C { uint256 public total = 5; "
                     "mapping(address => mapping(address => uint)) allowed; "
                     "uint constant LIMIT = 10; }")
        total, allowed, limit = unit.contracts[0].state_variables
        assert total.visibility == "public" and isinstance(total.value, Literal)
        assert allowed.type_name.name == "mapping"
        assert allowed.type_name.value.name == "mapping"
        assert limit.is_constant

    def test_function_header(self):
        unit = parse("contract C { function f(uint a, bool b) external view "
                     "returns (uint, bool) { return (a, b); } }")
        fn = unit.contracts[0].functions[0]
        assert [p.name for p in fn.parameters] == ["a", "b"]
        assert len(fn.return_parameters) == 2
        assert fn.visibility == "external" and fn.state_mutability == "view"

    def test_constructor_and_event(self):
        unit = parse("contract C { event Moved(address indexed to, uint amount); "
                     "constructor(uint v) {} }")
        contract = unit.contracts[0]
        assert contract.constructor is not None
        assert contract.constructor.display_name == "constructor"
        assert contract.events[0].name == "Moved"

    def test_unimplemented_function(self):
        unit = parse("interface I { function g() external returns (uint); }")
        assert not unit.contracts[0].functions[0].is_implemented


class TestStatements:
    """FE-003: Statement forms."""

    def test_declaration_vs_expression(self):
        decl, expr = body_of(wrap("uint y = 1; x = y;"))
        assert isinstance(decl, VariableDeclarationStatement)
        assert decl.declaration.name == "y"
        assert isinstance(expr, ExpressionStatement)
        assert isinstance(expr.expression, Assignment)

    def test_if_else(self):
        (stmt,) = body_of(wrap("if (x > 1) { x = 0; } else x = 1;"))
        assert isinstance(stmt, IfStatement)
        assert isinstance(stmt.true_body, Block)
        assert isinstance(stmt.false_body, ExpressionStatement)

    def test_loops(self):
        w, d, f = body_of(wrap(
            "while (x < 3) x++; do { x--; } while (x > 0); "
            "for (uint i = 0; i < 3; i++) { continue; }"
        ))
        assert isinstance(w, WhileStatement) and not w.is_do_while
        assert isinstance(d, WhileStatement) and d.is_do_while
        assert isinstance(f, ForStatement)
        assert isinstance(f.initialization, VariableDeclarationStatement)
        assert isinstance(f.loop_expression, ExpressionStatement)

    def test_empty_for_header(self):
        (f,) = body_of(wrap("for (;;) { break; }"))
        assert f.initialization is None and f.condition is None and f.loop_expression is None

    def test_return_tuple(self):
        (ret,) = body_of("contract C { function f() public returns (uint, uint) { return (1, 2); } }")
        assert isinstance(ret, Return)
        assert isinstance(ret.expression, TupleExpression)


class TestExpressions:
    """FE-004: Precedence and postfix forms."""

    def test_precedence(self):
        (stmt,) = body_of(wrap("x = 1 + 2 * 3;"))
        value = stmt.expression.value
        assert isinstance(value, BinaryOperation) and value.op == "+"
        assert isinstance(value.right, BinaryOperation) and value.right.op == "*"

    def test_logical_precedence(self):
        (stmt,) = body_of(wrap("bool b = x > 1 && x < 5 || x == 9;"))
        value = stmt.initial_value
        assert value.op == "||"
        assert value.left.op == "&&"

    def test_conditional_and_unary(self):
        (stmt,) = body_of(wrap("x = x > 0 ? x - 1 : 0;"))
        assert isinstance(stmt.expression.value, Conditional)
        (inc,) = body_of(wrap("++x;"))
        assert isinstance(inc.expression, UnaryOperation) and inc.expression.prefix

    def test_index_member_call(self):
        (stmt,) = body_of(wrap("m[msg.sender] = 1;"))
        target = stmt.expression.target
        assert isinstance(target, IndexAccess)
        assert isinstance(target.index, MemberAccess)
        assert target.index.member == "sender"

    def test_call_options_skipped(self):
        (stmt,) = body_of(wrap("a.call{value: 1}(\"\");"))
        call = stmt.expression
        assert isinstance(call, FunctionCall)
        assert isinstance(call.callee, MemberAccess) and call.callee.member == "call"

    def test_units(self):
        (stmt,) = body_of(wrap("x = 2 ether + 1 days;"))
        value = stmt.expression.value
        assert value.left.value == 2 * 10 ** 18
        assert value.right.value == 86400


class TestUnsupported:
    """FE-005: Constructs outside the subset are rejected, not mis-parsed."""

    @pytest.mark.parametrize("source", [
        "contract C { modifier m() { _; } }",
        "contract C { struct S { uint a; } }",
        "contract C { uint[] xs; }",
        "contract C { function f() public { uint y = 2 ** 3; } }",
        "contract C { function f() public { assembly { } } }",
        "import \"a.sol\";",
        "contract C is B(1) {}",
    ])
    def test_rejected(self, source):
        with pytest.raises(CompileError) as exc:
            parse(source)
        assert exc.value.errors[0].kind == DiagnosticKind.UNSUPPORTED

    def test_syntax_error_location(self):
        with pytest.raises(CompileError) as exc:
            parse("contract C {\n  function f() public { x = ; }\n}")
        diagnostic = exc.value.errors[0]
        assert diagnostic.kind == DiagnosticKind.SYNTAX_ERROR
        assert diagnostic.location.line == 2
