from setuptools import setup, find_packages

setup(
    name="solhorn",
    version="0.1.0",
    description="solhorn — Horn-clause model checker for Solidity smart contracts",
    packages=find_packages(include=["solhorn", "solhorn.*"]),
    python_requires=">=3.10",
    install_requires=[
        "z3-solver>=4.12.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
