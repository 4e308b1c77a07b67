"""solhorn Parser — recursive-descent parser for a Solidity subset.

Parses a token stream into a SourceUnit. One token of lookahead everywhere
except at statement start, where `T x` (declaration) and `x ...`
(expression) are told apart by the second token.

Constructs outside the subset (arrays, structs, modifiers, imports,
exponentiation, inline assembly, ...) are rejected with an `unsupported`
diagnostic rather than silently mis-parsed.
"""

from __future__ import annotations

from typing import Optional

from solhorn.frontend.lexer import Token, TokenType, tokenize
from solhorn.ast_nodes import (
    SourceUnit, ContractDefinition, FunctionDefinition, EventDefinition,
    VariableDeclaration, TypeName,
    Statement, Block, VariableDeclarationStatement, ExpressionStatement,
    IfStatement, WhileStatement, ForStatement, Break, Continue, Return,
    EmitStatement,
    Expression, Literal, Identifier, BinaryOperation, UnaryOperation,
    Assignment, Conditional, IndexAccess, MemberAccess, TupleExpression,
    FunctionCall,
)
from solhorn.errors import SourceLocation, syntax_error, unsupported, CompileError


VISIBILITIES = ("public", "private", "internal", "external")
MUTABILITIES = ("pure", "view", "payable", "nonpayable")
DATA_LOCATIONS = ("memory", "storage", "calldata")

ASSIGNMENT_OPS = {
    TokenType.ASSIGN: "=",
    TokenType.PLUS_ASSIGN: "+=",
    TokenType.MINUS_ASSIGN: "-=",
    TokenType.STAR_ASSIGN: "*=",
    TokenType.SLASH_ASSIGN: "/=",
    TokenType.PERCENT_ASSIGN: "%=",
}

# Binary precedence levels, loosest first.
BINARY_LEVELS: list[tuple[TokenType, ...]] = [
    (TokenType.OR,),
    (TokenType.AND,),
    (TokenType.EQ, TokenType.NEQ),
    (TokenType.LT, TokenType.GT, TokenType.LTE, TokenType.GTE),
    (TokenType.BIT_OR,),
    (TokenType.BIT_XOR,),
    (TokenType.BIT_AND,),
    (TokenType.SHL, TokenType.SHR),
    (TokenType.PLUS, TokenType.MINUS),
    (TokenType.STAR, TokenType.SLASH, TokenType.PERCENT),
]

UNIT_MULTIPLIERS = {
    "wei": 1,
    "gwei": 10 ** 9,
    "ether": 10 ** 18,
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 604800,
}


class Parser:
    """Recursive-descent parser for the Solidity subset."""

    def __init__(self, tokens: list[Token], filename: str = "<stdin>"):
        self.tokens = tokens
        self.pos = 0
        self.filename = filename

    def _current(self) -> Token:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return self.tokens[-1]  # EOF

    def _peek(self, offset: int = 0) -> TokenType:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx].type

    def _peek_value(self, offset: int = 0) -> str:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx].value

    def _loc(self) -> SourceLocation:
        return self._current().location

    def _advance(self) -> Token:
        tok = self._current()
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def _expect(self, tt: TokenType) -> Token:
        tok = self._current()
        if tok.type != tt:
            raise CompileError(syntax_error(
                f"Expected {tt.name}, got {tok.type.name} ('{tok.value}')",
                tok.location,
            ))
        return self._advance()

    def _match(self, tt: TokenType) -> Optional[Token]:
        if self._peek() == tt:
            return self._advance()
        return None

    def _unsupported(self, construct: str) -> CompileError:
        return CompileError(unsupported(construct, self._loc()))

    # -------------------------------------------------------------------
    # Top-level
    # -------------------------------------------------------------------

    def parse(self) -> SourceUnit:
        unit = SourceUnit(filename=self.filename, location=self._loc())
        while self._peek() != TokenType.EOF:
            tt = self._peek()
            if tt == TokenType.PRAGMA:
                unit.pragmas.append(self._parse_pragma())
            elif tt == TokenType.IMPORT:
                raise self._unsupported("import")
            elif tt in (TokenType.CONTRACT, TokenType.INTERFACE,
                        TokenType.LIBRARY, TokenType.ABSTRACT):
                unit.contracts.append(self._parse_contract())
            else:
                raise CompileError(syntax_error(
                    f"Expected 'pragma' or a contract definition, got '{self._current().value}'",
                    self._loc(),
                ))
        return unit

    def _parse_pragma(self) -> str:
        self._expect(TokenType.PRAGMA)
        parts: list[str] = []
        while self._peek() not in (TokenType.SEMICOLON, TokenType.EOF):
            parts.append(self._advance().value)
        self._expect(TokenType.SEMICOLON)
        return " ".join(parts)

    # -------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------

    def _parse_contract(self) -> ContractDefinition:
        loc = self._loc()
        is_abstract = self._match(TokenType.ABSTRACT) is not None
        kind_token = self._advance()
        if kind_token.type not in (TokenType.CONTRACT, TokenType.INTERFACE, TokenType.LIBRARY):
            raise CompileError(syntax_error("Expected 'contract' after 'abstract'", kind_token.location))
        name = self._expect(TokenType.IDENT).value
        contract = ContractDefinition(
            name=name, kind=kind_token.value, is_abstract=is_abstract, location=loc,
        )

        if self._match(TokenType.IS):
            contract.base_names.append(self._parse_base_name())
            while self._match(TokenType.COMMA):
                contract.base_names.append(self._parse_base_name())

        self._expect(TokenType.LBRACE)
        while self._peek() != TokenType.RBRACE:
            self._parse_contract_member(contract)
        self._expect(TokenType.RBRACE)
        return contract

    def _parse_base_name(self) -> str:
        name = self._expect(TokenType.IDENT).value
        if self._peek() == TokenType.LPAREN:
            raise self._unsupported("base constructor arguments")
        return name

    def _parse_contract_member(self, contract: ContractDefinition) -> None:
        tt = self._peek()
        if tt == TokenType.FUNCTION:
            function = self._parse_function()
            function.contract = contract
            contract.functions.append(function)
        elif tt == TokenType.CONSTRUCTOR:
            function = self._parse_constructor()
            function.contract = contract
            contract.functions.append(function)
        elif tt == TokenType.EVENT:
            contract.events.append(self._parse_event())
        elif tt == TokenType.MODIFIER:
            raise self._unsupported("modifier")
        elif tt == TokenType.IDENT and self._peek_value() in ("struct", "enum", "using", "error"):
            raise self._unsupported(self._peek_value())
        elif tt == TokenType.IDENT and self._peek_value() in ("receive", "fallback"):
            raise self._unsupported(f"{self._peek_value()} function")
        elif tt in (TokenType.IDENT, TokenType.MAPPING):
            declaration = self._parse_state_variable()
            declaration.scope = contract
            contract.state_variables.append(declaration)
        else:
            raise CompileError(syntax_error(
                f"Unexpected token '{self._current().value}' in contract body",
                self._loc(),
            ))

    def _parse_state_variable(self) -> VariableDeclaration:
        loc = self._loc()
        type_name = self._parse_type_name()
        declaration = VariableDeclaration(
            type_name=type_name, is_state_variable=True, location=loc,
        )
        while self._peek() == TokenType.IDENT and self._peek(1) != TokenType.SEMICOLON \
                and self._peek(1) != TokenType.ASSIGN:
            word = self._advance().value
            if word in VISIBILITIES:
                declaration.visibility = word
            elif word in ("constant", "immutable"):
                declaration.is_constant = word == "constant"
            elif word == "override":
                continue
            else:
                raise CompileError(syntax_error(f"Unexpected '{word}' in state variable declaration", loc))
        declaration.name = self._expect(TokenType.IDENT).value
        if self._match(TokenType.ASSIGN):
            declaration.value = self._parse_expression()
        self._expect(TokenType.SEMICOLON)
        return declaration

    def _parse_event(self) -> EventDefinition:
        loc = self._loc()
        self._expect(TokenType.EVENT)
        name = self._expect(TokenType.IDENT).value
        parameters = self._parse_parameter_list()
        if self._peek() == TokenType.IDENT and self._peek_value() == "anonymous":
            self._advance()
        self._expect(TokenType.SEMICOLON)
        return EventDefinition(name=name, parameters=parameters, location=loc)

    # -------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------

    def _parse_function(self) -> FunctionDefinition:
        loc = self._loc()
        self._expect(TokenType.FUNCTION)
        name = self._expect(TokenType.IDENT).value
        function = FunctionDefinition(name=name, location=loc)
        function.parameters = self._parse_parameter_list()
        self._parse_function_attributes(function)
        if self._match(TokenType.RETURNS):
            function.return_parameters = self._parse_parameter_list()
        if self._match(TokenType.SEMICOLON) is None:
            function.body = self._parse_block()
        return function

    def _parse_constructor(self) -> FunctionDefinition:
        loc = self._loc()
        self._expect(TokenType.CONSTRUCTOR)
        function = FunctionDefinition(name="constructor", is_constructor=True, location=loc)
        function.parameters = self._parse_parameter_list()
        self._parse_function_attributes(function)
        function.body = self._parse_block()
        return function

    def _parse_function_attributes(self, function: FunctionDefinition) -> None:
        while self._peek() == TokenType.IDENT:
            word = self._peek_value()
            if word in VISIBILITIES:
                function.visibility = self._advance().value
            elif word in MUTABILITIES:
                function.state_mutability = self._advance().value
            elif word == "virtual":
                self._advance()
            elif word == "override":
                self._advance()
                if self._match(TokenType.LPAREN):
                    while self._peek() != TokenType.RPAREN:
                        self._advance()
                    self._expect(TokenType.RPAREN)
            else:
                raise self._unsupported(f"modifier invocation '{word}'")

    def _parse_parameter_list(self) -> list[VariableDeclaration]:
        self._expect(TokenType.LPAREN)
        parameters: list[VariableDeclaration] = []
        if self._peek() != TokenType.RPAREN:
            parameters.append(self._parse_parameter())
            while self._match(TokenType.COMMA):
                parameters.append(self._parse_parameter())
        self._expect(TokenType.RPAREN)
        return parameters

    def _parse_parameter(self) -> VariableDeclaration:
        loc = self._loc()
        type_name = self._parse_type_name()
        while self._peek() == TokenType.IDENT and self._peek_value() in DATA_LOCATIONS + ("indexed",):
            self._advance()
        name = ""
        if self._peek() == TokenType.IDENT:
            name = self._advance().value
        return VariableDeclaration(name=name, type_name=type_name, location=loc)

    # -------------------------------------------------------------------
    # Type names
    # -------------------------------------------------------------------

    def _parse_type_name(self) -> TypeName:
        loc = self._loc()
        if self._match(TokenType.MAPPING):
            self._expect(TokenType.LPAREN)
            key = self._parse_type_name()
            self._expect(TokenType.FAT_ARROW)
            value = self._parse_type_name()
            self._expect(TokenType.RPAREN)
            type_name = TypeName(name="mapping", key=key, value=value, location=loc)
        else:
            name = self._expect(TokenType.IDENT).value
            if name == "address" and self._peek() == TokenType.IDENT and self._peek_value() == "payable":
                self._advance()
                name = "address payable"
            type_name = TypeName(name=name, location=loc)
        if self._peek() == TokenType.LBRACKET:
            raise self._unsupported("array type")
        return type_name

    # -------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------

    def _parse_block(self) -> Block:
        loc = self._loc()
        self._expect(TokenType.LBRACE)
        statements: list[Statement] = []
        while self._peek() != TokenType.RBRACE:
            statements.append(self._parse_statement())
        self._expect(TokenType.RBRACE)
        return Block(statements=statements, location=loc)

    def _parse_statement(self) -> Statement:
        tt = self._peek()
        loc = self._loc()

        if tt == TokenType.LBRACE:
            return self._parse_block()
        if tt == TokenType.IF:
            return self._parse_if()
        if tt == TokenType.WHILE:
            return self._parse_while()
        if tt == TokenType.DO:
            return self._parse_do_while()
        if tt == TokenType.FOR:
            return self._parse_for()
        if tt == TokenType.BREAK:
            self._advance()
            self._expect(TokenType.SEMICOLON)
            return Break(location=loc)
        if tt == TokenType.CONTINUE:
            self._advance()
            self._expect(TokenType.SEMICOLON)
            return Continue(location=loc)
        if tt == TokenType.RETURN:
            self._advance()
            expression = None
            if self._peek() != TokenType.SEMICOLON:
                expression = self._parse_expression()
            self._expect(TokenType.SEMICOLON)
            return Return(expression=expression, location=loc)
        if tt == TokenType.EMIT:
            self._advance()
            call = self._parse_expression()
            if not isinstance(call, FunctionCall):
                raise CompileError(syntax_error("Expected event invocation after 'emit'", loc))
            self._expect(TokenType.SEMICOLON)
            return EmitStatement(event_call=call, location=loc)
        if tt == TokenType.IDENT and self._peek_value() in ("assembly", "unchecked", "try"):
            raise self._unsupported(self._peek_value())

        statement = self._parse_simple_statement()
        self._expect(TokenType.SEMICOLON)
        return statement

    def _is_declaration_start(self) -> bool:
        if self._peek() == TokenType.MAPPING:
            return True
        if self._peek() != TokenType.IDENT:
            return False
        if self._peek(1) == TokenType.IDENT:
            return True
        return self._peek(1) == TokenType.LBRACKET and self._peek(2) == TokenType.RBRACKET

    def _parse_simple_statement(self) -> Statement:
        """Declaration or expression statement, without the trailing ';'."""
        loc = self._loc()
        if self._peek() == TokenType.LPAREN and self._peek(1) == TokenType.IDENT \
                and self._peek(2) == TokenType.IDENT:
            raise self._unsupported("tuple variable declaration")
        if self._is_declaration_start():
            type_name = self._parse_type_name()
            while self._peek() == TokenType.IDENT and self._peek_value() in DATA_LOCATIONS:
                self._advance()
            name = self._expect(TokenType.IDENT).value
            declaration = VariableDeclaration(name=name, type_name=type_name, location=loc)
            initial_value = None
            if self._match(TokenType.ASSIGN):
                initial_value = self._parse_expression()
            declaration.value = initial_value
            return VariableDeclarationStatement(
                declaration=declaration, initial_value=initial_value, location=loc,
            )
        expression = self._parse_expression()
        return ExpressionStatement(expression=expression, location=loc)

    def _parse_if(self) -> IfStatement:
        loc = self._loc()
        self._expect(TokenType.IF)
        self._expect(TokenType.LPAREN)
        condition = self._parse_expression()
        self._expect(TokenType.RPAREN)
        true_body = self._parse_statement()
        false_body = None
        if self._match(TokenType.ELSE):
            false_body = self._parse_statement()
        return IfStatement(condition=condition, true_body=true_body,
                           false_body=false_body, location=loc)

    def _parse_while(self) -> WhileStatement:
        loc = self._loc()
        self._expect(TokenType.WHILE)
        self._expect(TokenType.LPAREN)
        condition = self._parse_expression()
        self._expect(TokenType.RPAREN)
        body = self._parse_statement()
        return WhileStatement(condition=condition, body=body, location=loc)

    def _parse_do_while(self) -> WhileStatement:
        loc = self._loc()
        self._expect(TokenType.DO)
        body = self._parse_statement()
        self._expect(TokenType.WHILE)
        self._expect(TokenType.LPAREN)
        condition = self._parse_expression()
        self._expect(TokenType.RPAREN)
        self._expect(TokenType.SEMICOLON)
        return WhileStatement(condition=condition, body=body, is_do_while=True, location=loc)

    def _parse_for(self) -> ForStatement:
        loc = self._loc()
        self._expect(TokenType.FOR)
        self._expect(TokenType.LPAREN)
        initialization = None
        if self._peek() != TokenType.SEMICOLON:
            initialization = self._parse_simple_statement()
        self._expect(TokenType.SEMICOLON)
        condition = None
        if self._peek() != TokenType.SEMICOLON:
            condition = self._parse_expression()
        self._expect(TokenType.SEMICOLON)
        loop_expression = None
        if self._peek() != TokenType.RPAREN:
            expr_loc = self._loc()
            loop_expression = ExpressionStatement(
                expression=self._parse_expression(), location=expr_loc,
            )
        self._expect(TokenType.RPAREN)
        body = self._parse_statement()
        return ForStatement(initialization=initialization, condition=condition,
                            loop_expression=loop_expression, body=body, location=loc)

    # -------------------------------------------------------------------
    # Expressions (loosest to tightest)
    # -------------------------------------------------------------------

    def _parse_expression(self) -> Expression:
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        target = self._parse_conditional()
        if self._peek() in ASSIGNMENT_OPS:
            loc = self._loc()
            op = ASSIGNMENT_OPS[self._advance().type]
            value = self._parse_assignment()
            return Assignment(op=op, target=target, value=value, location=loc)
        return target

    def _parse_conditional(self) -> Expression:
        condition = self._parse_binary(0)
        if self._peek() == TokenType.QUESTION:
            loc = self._loc()
            self._advance()
            true_expression = self._parse_assignment()
            self._expect(TokenType.COLON)
            false_expression = self._parse_assignment()
            return Conditional(condition=condition, true_expression=true_expression,
                               false_expression=false_expression, location=loc)
        return condition

    def _parse_binary(self, level: int) -> Expression:
        if level == len(BINARY_LEVELS):
            return self._parse_exponent()
        left = self._parse_binary(level + 1)
        while self._peek() in BINARY_LEVELS[level]:
            loc = self._loc()
            op = self._advance().value
            right = self._parse_binary(level + 1)
            left = BinaryOperation(op=op, left=left, right=right, location=loc)
        return left

    def _parse_exponent(self) -> Expression:
        base = self._parse_unary()
        if self._peek() == TokenType.STAR_STAR:
            raise self._unsupported("exponentiation")
        return base

    def _parse_unary(self) -> Expression:
        tt = self._peek()
        loc = self._loc()
        if tt in (TokenType.NOT, TokenType.MINUS, TokenType.BIT_NOT,
                  TokenType.INC, TokenType.DEC):
            op = self._advance().value
            operand = self._parse_unary()
            return UnaryOperation(op=op, operand=operand, prefix=True, location=loc)
        if tt == TokenType.DELETE:
            self._advance()
            operand = self._parse_unary()
            return UnaryOperation(op="delete", operand=operand, prefix=True, location=loc)
        return self._parse_postfix()

    def _parse_postfix(self) -> Expression:
        expr = self._parse_primary()
        while True:
            tt = self._peek()
            loc = self._loc()
            if tt == TokenType.LPAREN:
                arguments = self._parse_call_arguments()
                expr = FunctionCall(callee=expr, arguments=arguments, location=expr.location or loc)
            elif tt == TokenType.LBRACE and isinstance(expr, MemberAccess):
                self._skip_call_options()
            elif tt == TokenType.LBRACKET:
                self._advance()
                if self._peek() == TokenType.RBRACKET:
                    raise self._unsupported("array type")
                index = self._parse_expression()
                self._expect(TokenType.RBRACKET)
                expr = IndexAccess(base=expr, index=index, location=loc)
            elif tt == TokenType.DOT:
                self._advance()
                member = self._expect(TokenType.IDENT).value
                expr = MemberAccess(expression=expr, member=member, location=loc)
            elif tt in (TokenType.INC, TokenType.DEC):
                op = self._advance().value
                expr = UnaryOperation(op=op, operand=expr, prefix=False, location=loc)
            else:
                break
        return expr

    def _parse_call_arguments(self) -> list[Expression]:
        self._expect(TokenType.LPAREN)
        arguments: list[Expression] = []
        if self._peek() == TokenType.LBRACE:
            raise self._unsupported("named call arguments")
        if self._peek() != TokenType.RPAREN:
            arguments.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                arguments.append(self._parse_expression())
        self._expect(TokenType.RPAREN)
        return arguments

    def _skip_call_options(self) -> None:
        """`addr.call{value: v, gas: g}(...)`: options do not affect the encoding."""
        self._expect(TokenType.LBRACE)
        while self._peek() != TokenType.RBRACE:
            self._expect(TokenType.IDENT)
            self._expect(TokenType.COLON)
            self._parse_expression()
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE)
        if self._peek() != TokenType.LPAREN:
            raise CompileError(syntax_error("Expected call after call options", self._loc()))

    def _parse_primary(self) -> Expression:
        tt = self._peek()
        loc = self._loc()

        if tt == TokenType.NUMBER_LIT:
            value = int(self._advance().value)
            if self._peek() == TokenType.IDENT and self._peek_value() in UNIT_MULTIPLIERS:
                value *= UNIT_MULTIPLIERS[self._advance().value]
            return Literal(value=value, kind="number", location=loc)

        if tt == TokenType.HEX_LIT:
            return Literal(value=int(self._advance().value, 16), kind="number", location=loc)

        if tt == TokenType.STRING_LIT:
            return Literal(value=self._advance().value, kind="string", location=loc)

        if tt in (TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return Literal(value=tt == TokenType.TRUE, kind="bool", location=loc)

        if tt == TokenType.IDENT:
            name = self._advance().value
            if name == "new":
                raise CompileError(unsupported("contract creation", loc))
            if name == "type" and self._peek() == TokenType.LPAREN:
                raise CompileError(unsupported("type(...) expression", loc))
            return Identifier(name=name, location=loc)

        if tt == TokenType.MAPPING:
            raise CompileError(syntax_error("Unexpected mapping type in expression", loc))

        if tt == TokenType.LPAREN:
            self._advance()
            components = [self._parse_expression()]
            while self._match(TokenType.COMMA):
                components.append(self._parse_expression())
            self._expect(TokenType.RPAREN)
            if len(components) == 1:
                return components[0]
            return TupleExpression(components=components, location=loc)

        raise CompileError(syntax_error(
            f"Unexpected token '{self._current().value}' ({tt.name})",
            loc,
        ))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(source: str, filename: str = "<stdin>") -> SourceUnit:
    """Parse Solidity source code into an unresolved AST."""
    tokens = tokenize(source, filename)
    parser = Parser(tokens, filename)
    return parser.parse()
