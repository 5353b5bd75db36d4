import ply.yacc as yacc


# grammar terminals; layout, comment and loop keyword tokens never reach the grammar
tokens = (
    'DEF', 'RETURN', 'IF',
    'IDENTIFIER', 'INTEGER', 'STRING',
    'LPAREN', 'RPAREN', 'COLON', 'COMMA',
    'EQUAL', 'RARROW', 'EQEQ', 'NOTEQ',
)

LAYOUT = ('WHITESPACE', 'TAB', 'NEWLINE', 'COMMENT')
PUNCTUATION = ('LBRACE', 'RBRACE', 'LPAREN', 'RPAREN', 'SEMICOLON', 'COLON', 'COMMA')


class ParseError(Exception):
    def __init__(self, message, lineno=None):
        super().__init__(message)
        self.message = message
        self.lineno = lineno


class UnresolvedCallee(ParseError):
    pass


class Node:
    pass


class Literal(Node):
    def __init__(self, value):
        self.value = value

    def __repr__(self):
        return f"Literal({self.value!r})"


class Parameter(Node):
    def __init__(self, identifier, size_class=None):
        self.identifier = identifier
        self.size_class = size_class

    def __repr__(self):
        return f"Parameter(ID: {self.identifier}, Size: {self.size_class})"


class FunctionDefinition(Node):
    def __init__(self, name, params, return_size_class=None):
        self.name = name
        self.params = params
        self.return_size_class = return_size_class

    def __repr__(self):
        return f"FunctionDefinition(Name: {self.name}, Params: {self.params}, Return Size: {self.return_size_class})"


class FunctionCall(Node):
    def __init__(self, call_name, params):
        self.call_name = call_name
        self.params = params

    def __repr__(self):
        return f"FunctionCall(Name: {self.call_name}, Params: {self.params})"


class Assignment(Node):
    def __init__(self, identifier, value):
        self.identifier = identifier
        self.value = value

    def __repr__(self):
        return f"Assignment(ID: {self.identifier}, Value: {self.value})"


class ReturnStatement(Node):
    def __init__(self, value):
        self.value = value

    def __repr__(self):
        return f"ReturnStatement(Value: {self.value})"


class IfStatement(Node):
    def __init__(self, identifier, operator, value):
        self.identifier = identifier
        self.operator = operator
        self.value = value

    def __repr__(self):
        return f"IfStatement(ID: {self.identifier}, Operator: {self.operator}, Value: {self.value})"


def p_statement(p):
    """statement : function_definition
    | function_call
    | assignment
    | return_statement
    | if_statement"""
    p[0] = p[1]


def p_function_definition(p):
    "function_definition : DEF IDENTIFIER LPAREN params RPAREN return_annotation COLON"
    p[0] = FunctionDefinition(p[2], p[4], p[6])


def p_params(p):
    """params : param_list
    | empty"""
    p[0] = p[1] if p[1] else []


def p_param_list_single(p):
    "param_list : param"
    p[0] = [p[1]]


def p_param_list_multiple(p):
    "param_list : param_list COMMA param"
    p[0] = p[1] + [p[3]]


def p_param(p):
    """param : IDENTIFIER
    | IDENTIFIER COLON IDENTIFIER"""
    if len(p) == 2:
        p[0] = Parameter(p[1])
    else:
        p[0] = Parameter(p[1], p[3])


def p_return_annotation(p):
    """return_annotation : RARROW IDENTIFIER
    | empty"""
    p[0] = p[2] if len(p) == 3 else None


def p_function_call(p):
    "function_call : IDENTIFIER LPAREN arguments RPAREN"
    p[0] = FunctionCall(p[1], p[3])


def p_arguments(p):
    """arguments : argument_list
    | empty"""
    p[0] = p[1] if p[1] else []


def p_argument_list_single(p):
    "argument_list : argument"
    p[0] = [p[1]]


def p_argument_list_multiple(p):
    "argument_list : argument_list COMMA argument"
    p[0] = p[1] + [p[3]]


def p_argument_identifier(p):
    "argument : IDENTIFIER"
    p[0] = p[1]


def p_argument_literal(p):
    """argument : INTEGER
    | STRING"""
    p[0] = Literal(p[1])


def p_assignment(p):
    """assignment : IDENTIFIER EQUAL argument
    | IDENTIFIER EQUAL function_call"""
    p[0] = Assignment(p[1], p[3])


def p_return_statement(p):
    """return_statement : RETURN IDENTIFIER
    | RETURN INTEGER"""
    if isinstance(p[2], int):
        p[0] = ReturnStatement(Literal(p[2]))
    else:
        p[0] = ReturnStatement(p[2])


def p_if_statement(p):
    """if_statement : IF IDENTIFIER EQEQ INTEGER COLON
    | IF IDENTIFIER NOTEQ INTEGER COLON"""
    p[0] = IfStatement(p[2], p[3], Literal(p[4]))


def p_empty(p):
    "empty :"
    p[0] = None


def p_error(p):
    if p:
        raise ParseError(f"unexpected '{p.value}'", p.lineno)
    raise ParseError("unexpected end of line")


parser = yacc.yacc(debug=False, write_tables=False)


class TokenStream:
    """Feeds one source line to the grammar, without layout tokens."""

    def __init__(self, line_tokens):
        self.tokens = []
        for tok in line_tokens:
            if tok.type in LAYOUT:
                continue
            if tok.type in PUNCTUATION and len(tok.value) > 1:
                raise ParseError(f"unexpected '{tok.value}'", tok.lineno)
            self.tokens.append(tok)
        self.position = 0

    def token(self):
        if self.position >= len(self.tokens):
            return None
        tok = self.tokens[self.position]
        self.position += 1
        return tok


def parse_statement(line_tokens):
    """Parse the tokens of a single line into a statement node.

    Raises ParseError when the line does not form a statement.
    """
    stream = TokenStream(line_tokens)
    if not stream.tokens:
        raise ParseError("empty statement")
    return parser.parse(lexer=stream)


if __name__ == "__main__":
    from PyvLexer import tokenize

    while True:
        try:
            s = input("Pyv > ")
        except EOFError:
            break
        if not s:
            continue
        try:
            print(parse_statement(tokenize(s)))
        except ParseError as e:
            print(f"err: {e.message}")
