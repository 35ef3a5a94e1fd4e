"""
Syntax tree traversal.

`SyntaxTreeVisitor` walks every node of a file. Dispatch goes through
`NODE_KINDS`, which must name every class in `syntax.NODE_TYPES`; a node
class added without a kind fails at import time instead of being skipped
silently during traversal.
"""

from modfile import syntax

NODE_KINDS = {
    syntax.Identifier: "identifier",
    syntax.IntLiteral: "int_literal",
    syntax.FloatLiteral: "float_literal",
    syntax.StringLiteral: "string_literal",
    syntax.ListExpression: "list_expression",
    syntax.DictEntry: "dict_entry",
    syntax.DictExpression: "dict_expression",
    syntax.ComprehensionFor: "comprehension_for",
    syntax.ComprehensionIf: "comprehension_if",
    syntax.Comprehension: "comprehension",
    syntax.PositionalArgument: "positional_argument",
    syntax.KeywordArgument: "keyword_argument",
    syntax.StarArgument: "star_argument",
    syntax.StarStarArgument: "star_star_argument",
    syntax.CallExpression: "call_expression",
    syntax.DotExpression: "dot_expression",
    syntax.IndexExpression: "index_expression",
    syntax.SliceExpression: "slice_expression",
    syntax.UnaryOperation: "unary_operation",
    syntax.BinaryOperation: "binary_operation",
    syntax.ConditionalExpression: "conditional_expression",
    syntax.MandatoryParameter: "mandatory_parameter",
    syntax.OptionalParameter: "optional_parameter",
    syntax.StarParameter: "star_parameter",
    syntax.StarStarParameter: "star_star_parameter",
    syntax.LambdaExpression: "lambda_expression",
    syntax.ExpressionStatement: "expression_statement",
    syntax.AssignmentStatement: "assignment_statement",
    syntax.IfStatement: "if_statement",
    syntax.ForStatement: "for_statement",
    syntax.DefStatement: "def_statement",
    syntax.ReturnStatement: "return_statement",
    syntax.FlowStatement: "flow_statement",
    syntax.LoadBinding: "load_binding",
    syntax.LoadStatement: "load_statement",
}

_unhandled = [t.__name__ for t in syntax.NODE_TYPES if t not in NODE_KINDS]
if _unhandled:
    raise TypeError(f"syntax node classes without a visitor kind: {', '.join(_unhandled)}")


def require_handlers(cls, prefix):
    """Check that `cls` defines `prefix + kind` for every node kind. Use as a class decorator helper."""
    missing = [prefix + kind for kind in NODE_KINDS.values() if not callable(getattr(cls, prefix + kind, None))]
    if missing:
        raise TypeError(f"{cls.__name__} is missing handlers: {', '.join(missing)}")
    return cls


class SyntaxTreeVisitor:
    """
    Depth-first traversal of a syntax tree.

    Subclasses override `visit_<kind>` methods and call the base method to
    keep descending into children.
    """

    def visit(self, node):
        return getattr(self, "visit_" + NODE_KINDS[type(node)])(node)

    def visit_all(self, nodes):
        for node in nodes:
            self.visit(node)

    def visit_file(self, file):
        self.visit_all(file.statements)

    def visit_block(self, statements):
        self.visit_all(statements)

    # --- Expressions ---

    def visit_identifier(self, node):
        pass

    def visit_int_literal(self, node):
        pass

    def visit_float_literal(self, node):
        pass

    def visit_string_literal(self, node):
        pass

    def visit_list_expression(self, node):
        self.visit_all(node.elements)

    def visit_dict_entry(self, node):
        self.visit(node.key)
        self.visit(node.value)

    def visit_dict_expression(self, node):
        self.visit_all(node.entries)

    def visit_comprehension_for(self, node):
        self.visit(node.vars)
        self.visit(node.iterable)

    def visit_comprehension_if(self, node):
        self.visit(node.condition)

    def visit_comprehension(self, node):
        self.visit_all(node.clauses)
        self.visit(node.body)

    def visit_positional_argument(self, node):
        self.visit(node.value)

    def visit_keyword_argument(self, node):
        self.visit(node.value)

    def visit_star_argument(self, node):
        self.visit(node.value)

    def visit_star_star_argument(self, node):
        self.visit(node.value)

    def visit_call_expression(self, node):
        self.visit(node.function)
        self.visit_all(node.arguments)

    def visit_dot_expression(self, node):
        self.visit(node.object)
        self.visit(node.field)

    def visit_index_expression(self, node):
        self.visit(node.object)
        self.visit(node.key)

    def visit_slice_expression(self, node):
        self.visit(node.object)
        for part in (node.lo, node.hi, node.step):
            if part is not None:
                self.visit(part)

    def visit_unary_operation(self, node):
        self.visit(node.operand)

    def visit_binary_operation(self, node):
        self.visit(node.lhs)
        self.visit(node.rhs)

    def visit_conditional_expression(self, node):
        self.visit(node.then_case)
        self.visit(node.condition)
        self.visit(node.else_case)

    def visit_mandatory_parameter(self, node):
        self.visit(node.identifier)

    def visit_optional_parameter(self, node):
        self.visit(node.identifier)
        self.visit(node.default)

    def visit_star_parameter(self, node):
        if node.identifier is not None:
            self.visit(node.identifier)

    def visit_star_star_parameter(self, node):
        self.visit(node.identifier)

    def visit_lambda_expression(self, node):
        self.visit_all(node.parameters)
        self.visit(node.body)

    # --- Statements ---

    def visit_expression_statement(self, node):
        self.visit(node.expression)

    def visit_assignment_statement(self, node):
        self.visit(node.lhs)
        self.visit(node.rhs)

    def visit_if_statement(self, node):
        self.visit(node.condition)
        self.visit_block(node.then_block)
        if node.else_block is not None:
            self.visit_block(node.else_block)

    def visit_for_statement(self, node):
        self.visit(node.iterable)
        self.visit(node.vars)
        self.visit_block(node.body)

    def visit_def_statement(self, node):
        self.visit(node.identifier)
        self.visit_all(node.parameters)
        self.visit_block(node.body)

    def visit_return_statement(self, node):
        if node.result is not None:
            self.visit(node.result)

    def visit_flow_statement(self, node):
        pass

    def visit_load_binding(self, node):
        self.visit(node.local)

    def visit_load_statement(self, node):
        self.visit(node.module)
        self.visit_all(node.bindings)


require_handlers(SyntaxTreeVisitor, "visit_")
