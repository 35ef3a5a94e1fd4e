"""
Module file syntax tree.

This module defines the closed set of syntax node classes produced by the
parser, the Lark transformer that builds them from a parse tree, and
`parse_file`, which never raises on bad input: syntax problems end up in
`StarlarkFile.errors`.
"""

import ast
import math
import threading
import warnings
from dataclasses import dataclass, field
from typing import List, Optional

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from modfile.errors import Location, SyntaxIssue
from modfile.grammar import BadDedent, ModuleFileIndenter, module_file_grammar


@dataclass(frozen=True)
class Node:
    location: Location


# --- Expressions ---

@dataclass(frozen=True)
class Identifier(Node):
    name: str


@dataclass(frozen=True)
class IntLiteral(Node):
    value: int


@dataclass(frozen=True)
class FloatLiteral(Node):
    value: float


@dataclass(frozen=True)
class StringLiteral(Node):
    value: str


@dataclass(frozen=True)
class ListExpression(Node):
    elements: List[Node]
    is_tuple: bool = False


@dataclass(frozen=True)
class DictEntry(Node):
    key: Node
    value: Node


@dataclass(frozen=True)
class DictExpression(Node):
    entries: List[DictEntry]


@dataclass(frozen=True)
class ComprehensionFor(Node):
    vars: Node
    iterable: Node


@dataclass(frozen=True)
class ComprehensionIf(Node):
    condition: Node


@dataclass(frozen=True)
class Comprehension(Node):
    body: Node  # an expression, or a DictEntry for dict comprehensions
    clauses: List[Node]
    is_dict: bool = False


@dataclass(frozen=True)
class PositionalArgument(Node):
    value: Node


@dataclass(frozen=True)
class KeywordArgument(Node):
    name: Identifier
    value: Node


@dataclass(frozen=True)
class StarArgument(Node):
    value: Node


@dataclass(frozen=True)
class StarStarArgument(Node):
    value: Node


@dataclass(frozen=True)
class CallExpression(Node):
    function: Node
    arguments: List[Node]


@dataclass(frozen=True)
class DotExpression(Node):
    object: Node
    field: Identifier


@dataclass(frozen=True)
class IndexExpression(Node):
    object: Node
    key: Node


@dataclass(frozen=True)
class SliceExpression(Node):
    object: Node
    lo: Optional[Node]
    hi: Optional[Node]
    step: Optional[Node]


@dataclass(frozen=True)
class UnaryOperation(Node):
    op: str
    operand: Node


@dataclass(frozen=True)
class BinaryOperation(Node):
    op: str
    lhs: Node
    rhs: Node


@dataclass(frozen=True)
class ConditionalExpression(Node):
    then_case: Node
    condition: Node
    else_case: Node


@dataclass(frozen=True)
class MandatoryParameter(Node):
    identifier: Identifier


@dataclass(frozen=True)
class OptionalParameter(Node):
    identifier: Identifier
    default: Node


@dataclass(frozen=True)
class StarParameter(Node):
    identifier: Optional[Identifier]


@dataclass(frozen=True)
class StarStarParameter(Node):
    identifier: Identifier


@dataclass(frozen=True)
class LambdaExpression(Node):
    parameters: List[Node]
    body: Node


# --- Statements ---

@dataclass(frozen=True)
class ExpressionStatement(Node):
    expression: Node


@dataclass(frozen=True)
class AssignmentStatement(Node):
    lhs: Node
    op: Optional[str]  # None for plain `=`, otherwise the binary operator of `op=`
    rhs: Node


@dataclass(frozen=True)
class IfStatement(Node):
    condition: Node
    then_block: List[Node]
    else_block: Optional[List[Node]] = None
    is_elif: bool = False


@dataclass(frozen=True)
class ForStatement(Node):
    vars: Node
    iterable: Node
    body: List[Node]


@dataclass(frozen=True)
class DefStatement(Node):
    identifier: Identifier
    parameters: List[Node]
    body: List[Node]


@dataclass(frozen=True)
class ReturnStatement(Node):
    result: Optional[Node]


@dataclass(frozen=True)
class FlowStatement(Node):
    kind: str  # "break", "continue" or "pass"


@dataclass(frozen=True)
class LoadBinding(Node):
    local: Identifier
    original: str


@dataclass(frozen=True)
class LoadStatement(Node):
    module: StringLiteral
    bindings: List[LoadBinding]


NODE_TYPES = (
    Identifier, IntLiteral, FloatLiteral, StringLiteral, ListExpression, DictEntry,
    DictExpression, ComprehensionFor, ComprehensionIf, Comprehension, PositionalArgument,
    KeywordArgument, StarArgument, StarStarArgument, CallExpression, DotExpression,
    IndexExpression, SliceExpression, UnaryOperation, BinaryOperation, ConditionalExpression,
    MandatoryParameter, OptionalParameter, StarParameter, StarStarParameter, LambdaExpression,
    ExpressionStatement, AssignmentStatement, IfStatement, ForStatement, DefStatement,
    ReturnStatement, FlowStatement, LoadBinding, LoadStatement,
)


@dataclass(frozen=True)
class StarlarkFile:
    """A parsed file: its top-level statements and any syntax errors found while parsing."""
    location: str
    statements: List[Node]
    errors: List[SyntaxIssue] = field(default_factory=list)

    @property
    def ok(self):
        return not self.errors


@v_args(meta=True)
class SyntaxTreeBuilder(Transformer):
    """
    Transforms a Lark parse tree into syntax tree nodes.

    Problems that the grammar cannot express (bad escapes, float overflow)
    are collected in `errors` instead of being raised, so one parse can
    report all of them.
    """

    def __init__(self, file):
        super().__init__()
        self._file = file
        self.errors = []

    def _loc(self, meta):
        return Location(file=self._file, line=meta.line, column=meta.column)

    def _token_loc(self, token):
        return Location(file=self._file, line=token.line, column=token.column)

    def _identifier(self, token):
        return Identifier(self._token_loc(token), str(token))

    def _string_value(self, token):
        """Decode a string token, including quotes and an optional raw prefix."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            try:
                return ast.literal_eval(str(token))
            except (SyntaxError, ValueError, DeprecationWarning, SyntaxWarning) as e:
                reason = getattr(e, "msg", None) or str(e)
                self.errors.append(SyntaxIssue(
                    location=self._token_loc(token),
                    message=f"invalid string literal: {reason}",
                ))
                return ""

    def _fold(self, children):
        result = children[0]
        for op, rhs in zip(children[1::2], children[2::2]):
            result = BinaryOperation(result.location, str(op), result, rhs)
        return result

    def _fold_with(self, op, children):
        result = children[0]
        for rhs in children[1:]:
            result = BinaryOperation(result.location, op, result, rhs)
        return result

    # --- File and blocks ---

    def start(self, meta, children):
        return list(children)

    def suite(self, meta, children):
        return list(children)

    # --- Simple statements ---

    def expr_stmt(self, meta, children):
        expression = children[0]
        return ExpressionStatement(expression.location, expression)

    def assign_stmt(self, meta, children):
        lhs, rhs = children
        return AssignmentStatement(lhs.location, lhs, None, rhs)

    def aug_assign_stmt(self, meta, children):
        lhs, op, rhs = children
        return AssignmentStatement(lhs.location, lhs, str(op)[:-1], rhs)

    def pass_stmt(self, meta, children):
        return FlowStatement(self._token_loc(children[0]), "pass")

    def break_stmt(self, meta, children):
        return FlowStatement(self._token_loc(children[0]), "break")

    def continue_stmt(self, meta, children):
        return FlowStatement(self._token_loc(children[0]), "continue")

    def return_stmt(self, meta, children):
        keyword, result = children
        return ReturnStatement(self._token_loc(keyword), result)

    def load_stmt(self, meta, children):
        module_token, *bindings = children
        module = StringLiteral(self._token_loc(module_token), self._string_value(module_token))
        return LoadStatement(self._loc(meta), module, bindings)

    def load_symbol(self, meta, children):
        token = children[0]
        name = self._string_value(token)
        local = Identifier(self._token_loc(token), name)
        return LoadBinding(local.location, local, name)

    def load_alias(self, meta, children):
        name, original = children
        local = self._identifier(name)
        return LoadBinding(local.location, local, self._string_value(original))

    # --- Compound statements ---

    def if_stmt(self, meta, children):
        condition, then_block, *rest = children
        else_block = rest.pop()
        for location, elif_condition, elif_block in reversed(rest):
            else_block = [IfStatement(location, elif_condition, elif_block, else_block, is_elif=True)]
        return IfStatement(self._loc(meta), condition, then_block, else_block)

    def elif_clause(self, meta, children):
        condition, block = children
        return (self._loc(meta), condition, block)

    def else_clause(self, meta, children):
        return children[0]

    def for_stmt(self, meta, children):
        loop_vars, iterable, body = children
        return ForStatement(self._loc(meta), loop_vars, iterable, body)

    def def_stmt(self, meta, children):
        name, parameters, body = children
        return DefStatement(self._loc(meta), self._identifier(name), parameters or [], body)

    def parameters(self, meta, children):
        return list(children)

    def mandatory_param(self, meta, children):
        identifier = self._identifier(children[0])
        return MandatoryParameter(identifier.location, identifier)

    def optional_param(self, meta, children):
        name, default = children
        identifier = self._identifier(name)
        return OptionalParameter(identifier.location, identifier, default)

    def star_param(self, meta, children):
        name = children[0]
        return StarParameter(self._loc(meta), self._identifier(name) if name is not None else None)

    def star_star_param(self, meta, children):
        return StarStarParameter(self._loc(meta), self._identifier(children[0]))

    def loop_vars_tuple(self, meta, children):
        return ListExpression(children[0].location, list(children), is_tuple=True)

    # --- Expressions ---

    def testlist_tuple(self, meta, children):
        return ListExpression(children[0].location, list(children), is_tuple=True)

    def conditional_expr(self, meta, children):
        then_case, condition, else_case = children
        return ConditionalExpression(then_case.location, then_case, condition, else_case)

    def lambdef(self, meta, children):
        parameters, body = children
        return LambdaExpression(self._loc(meta), parameters or [], body)

    def or_test(self, meta, children):
        return self._fold_with("or", children)

    def and_test(self, meta, children):
        return self._fold_with("and", children)

    def not_expr(self, meta, children):
        return UnaryOperation(self._loc(meta), "not", children[0])

    def comparison(self, meta, children):
        return self._fold(children)

    def comp_op(self, meta, children):
        return " ".join(str(token) for token in children)

    expr = xor_expr = and_expr = shift_expr = arith_expr = term = comparison

    def unary_expr(self, meta, children):
        op, operand = children
        return UnaryOperation(self._token_loc(op), str(op), operand)

    def call_expr(self, meta, children):
        function, arguments = children
        return CallExpression(function.location, function, arguments or [])

    def index_expr(self, meta, children):
        obj, key = children
        return IndexExpression(obj.location, obj, key)

    def slice_expr(self, meta, children):
        obj, lo, hi, step = children
        return SliceExpression(obj.location, obj, lo, hi, step)

    def slice_bound(self, meta, children):
        return children[0] if children else None

    def slice_step(self, meta, children):
        return children[0]

    def dot_expr(self, meta, children):
        obj, name = children
        return DotExpression(obj.location, obj, self._identifier(name))

    def identifier(self, meta, children):
        return self._identifier(children[0])

    def int_literal(self, meta, children):
        token = children[0]
        return IntLiteral(self._token_loc(token), int(str(token), 0))

    def float_literal(self, meta, children):
        token = children[0]
        value = float(str(token))
        if math.isinf(value):
            self.errors.append(SyntaxIssue(
                location=self._token_loc(token),
                message=f"floating-point literal too large: {token}",
            ))
        return FloatLiteral(self._token_loc(token), value)

    def string_literal(self, meta, children):
        token = children[0]
        return StringLiteral(self._token_loc(token), self._string_value(token))

    def tuple_expr(self, meta, children):
        return ListExpression(self._loc(meta), list(children), is_tuple=True)

    def list_expr(self, meta, children):
        return ListExpression(self._loc(meta), list(children))

    def list_comprehension(self, meta, children):
        body, clauses = children
        return Comprehension(self._loc(meta), body, clauses)

    def dict_expr(self, meta, children):
        return DictExpression(self._loc(meta), list(children))

    def dict_comprehension(self, meta, children):
        body, clauses = children
        return Comprehension(self._loc(meta), body, clauses, is_dict=True)

    def entry(self, meta, children):
        key, value = children
        return DictEntry(key.location, key, value)

    def comp_clauses(self, meta, children):
        return list(children)

    def comp_for(self, meta, children):
        loop_vars, iterable = children
        return ComprehensionFor(self._loc(meta), loop_vars, iterable)

    def comp_if(self, meta, children):
        return ComprehensionIf(self._loc(meta), children[0])

    def arguments(self, meta, children):
        return list(children)

    def positional_arg(self, meta, children):
        value = children[0]
        return PositionalArgument(value.location, value)

    def keyword_arg(self, meta, children):
        name, value = children
        identifier = self._identifier(name)
        return KeywordArgument(identifier.location, identifier, value)

    def star_arg(self, meta, children):
        return StarArgument(self._loc(meta), children[0])

    def star_star_arg(self, meta, children):
        return StarStarArgument(self._loc(meta), children[0])


_local = threading.local()


def _parser():
    # The indenter keeps per-parse state, so each thread gets its own parser.
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = Lark(
            module_file_grammar,
            parser='lalr',
            postlex=ModuleFileIndenter(),
            propagate_positions=True,
            maybe_placeholders=True,
        )
        _local.parser = parser
    return parser


def _describe(error):
    """Render a Lark parse exception as a short syntax error message."""
    if isinstance(error, UnexpectedCharacters):
        return f"invalid character: '{error.char}'"
    if isinstance(error, UnexpectedEOF):
        return "unexpected end of file"
    if isinstance(error, UnexpectedToken):
        token = error.token
        if token.type == '$END':
            return "unexpected end of file"
        if token.type == '_NEWLINE':
            shown = "newline"
        elif token.type == '_INDENT':
            return "unexpected indentation"
        elif token.type == '_DEDENT':
            shown = "outdent"
        else:
            shown = str(token)
        expected = ", ".join(sorted(error.expected)) if error.expected else ""
        if expected:
            return f"syntax error at '{shown}': expected {expected}"
        return f"syntax error at '{shown}'"
    return str(error)


def parse_file(text, location):
    """
    Parse module file source text.

    Args:
        text: The source text.
        location: The file name used in every Location of the result.

    Returns:
        A StarlarkFile. If `errors` is non-empty, `statements` is empty.
    """
    if not text.endswith("\n"):
        text += "\n"
    try:
        tree = _parser().parse(text)
    except UnexpectedInput as e:
        line = e.line if e.line > 0 else text.count("\n")
        column = e.column if e.column > 0 else 1
        issue = SyntaxIssue(location=Location(file=location, line=line, column=column), message=_describe(e))
        return StarlarkFile(location, [], [issue])
    except BadDedent as e:
        issue = SyntaxIssue(location=Location(file=location, line=e.line, column=e.column), message=str(e))
        return StarlarkFile(location, [], [issue])

    builder = SyntaxTreeBuilder(location)
    statements = builder.transform(tree)
    if builder.errors:
        return StarlarkFile(location, [], builder.errors)
    return StarlarkFile(location, statements)
