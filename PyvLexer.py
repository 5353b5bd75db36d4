import re

import ply.lex as lex


tokens = (

    'LBRACE', 'RBRACE', 'LPAREN', 'RPAREN', 'SEMICOLON', 'COLON', 'COMMA',

    'INT', 'RETURN', 'IF', 'WHILE', 'FOR', 'DEF',

    'IDENTIFIER', 'INTEGER', 'STRING',

    'EQUAL', 'PLUSEQUAL', 'MINUSEQUAL', 'RARROW', 'EQEQ', 'NOTEQ',

    'WHITESPACE', 'NEWLINE', 'TAB',

    'COMMENT', 'UNKNOWN',
)

# the original token buffer held 64 bytes including the terminator
MAX_TOKEN_LENGTH = 63

keywords = {
    'int': 'INT',
    'return': 'RETURN',
    'if': 'IF',
    'while': 'WHILE',
    'for': 'FOR',
    'def': 'DEF',
}

operators = {
    '=': 'EQUAL',
    '+=': 'PLUSEQUAL',
    '-=': 'MINUSEQUAL',
    '->': 'RARROW',
    '==': 'EQEQ',
    '!=': 'NOTEQ',
}

escapes = {
    '\\n': '\n',
    '\\t': '\t',
}

_escape_re = re.compile(r'\\[nt]')


class LexError(Exception):
    def __init__(self, message, lineno):
        super().__init__(f"line {lineno}: {message}")
        self.message = message
        self.lineno = lineno


class TokenTooLong(LexError):
    pass


def unescape(text):
    return _escape_re.sub(lambda m: escapes[m.group(0)], text)


def _check_length(t, text):
    limit = t.lexer.max_token_length
    if len(text) > limit:
        raise TokenTooLong(
            f"token '{text[:16]}...' is {len(text)} characters long (limit {limit})",
            t.lexer.lineno,
        )


def t_COMMENT(t):
    r'\#[^\n]*'
    return t


def t_STRING(t):
    r"""["'][^"']*["']"""
    _check_length(t, t.value)
    t.lexer.lineno += t.value.count('\n')
    t.value = unescape(t.value[1:-1])
    return t


def t_IDENTIFIER(t):
    r'[A-Za-z_]+'
    _check_length(t, t.value)
    t.type = keywords.get(t.value, 'IDENTIFIER')
    return t


def t_INTEGER(t):
    r'[0-9]+'
    _check_length(t, t.value)
    t.value = int(t.value)
    return t


def t_TAB(t):
    r'\t'
    return t


def t_NEWLINE(t):
    r'\n+'
    t.lexer.lineno += len(t.value)
    return t


def t_WHITESPACE(t):
    r'[\ \r]+'
    return t


def t_LBRACE(t):
    r'\{+'
    return t


def t_RBRACE(t):
    r'\}+'
    return t


def t_LPAREN(t):
    r'\(+'
    return t


def t_RPAREN(t):
    r'\)+'
    return t


def t_SEMICOLON(t):
    r';+'
    return t


def t_COLON(t):
    r':+'
    return t


def t_COMMA(t):
    r',+'
    return t


def t_UNKNOWN(t):
    r'[^A-Za-z0-9_{}();:,"\'\#\ \r\n\t]+'
    _check_length(t, t.value)
    t.type = operators.get(t.value, 'UNKNOWN')
    return t


def t_error(t):
    if t.value[0] in '"\'':
        raise LexError("unterminated string", t.lexer.lineno)
    raise LexError(f"illegal character '{t.value[0]}'", t.lexer.lineno)


lexer = lex.lex()
lexer.max_token_length = MAX_TOKEN_LENGTH


def tokenize(source, max_token_length=MAX_TOKEN_LENGTH):
    """Split *source* into LexTokens, layout tokens included."""
    lx = lexer.clone()
    lx.max_token_length = max_token_length
    lx.lineno = 1
    lx.input(source)
    return list(lx)


if __name__ == "__main__":
    while True:
        try:
            s = input("> ")
        except EOFError:
            break
        for tok in tokenize(s.replace("\\t", "\t")):
            print(tok)
