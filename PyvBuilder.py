"""
Line-oriented parser and IR builder.

Tokens are consumed one source line at a time.  Leading tabs give the
indentation depth, which drives block bookkeeping: every ``if`` opens a
block whose label is declared when the matching dedent is seen.  Each
line is parsed into a statement node and lowered straight into the
current function of the IR context.

String constants cannot be written until the backend has laid out the
globals, so they are queued as fixups and copied into the compiled image
by build().
"""

import PyvRuntime
from PyvCodegen import BuildError, codegen
from PyvIR import SIZEOF_PTR, Context
from PyvLexer import tokenize
from PyvParser import (
    Assignment,
    FunctionCall,
    FunctionDefinition,
    IfStatement,
    Literal,
    ParseError,
    ReturnStatement,
    UnresolvedCallee,
    parse_statement,
)
from PyvRuntime import Implementation, ImplementationStatus


DEFAULT_SIZE = 8

SIZE_CLASSES = {
    "byte": 1,
    "word": 2,
    "dword": 4,
    "qword": 8,
}

AUTOGEN_PREFIX = "__autogen_"
MODULE_NAME = "__main__"


class Fixup:
    def __init__(self, dst, src, length):
        self.dst = dst
        self.src = src
        self.length = length

    def __repr__(self):
        return f"Fixup({self.dst}, {self.src!r}, {self.length})"


class Diagnostic:
    def __init__(self, kind, message, lineno):
        self.kind = kind
        self.message = message
        self.lineno = lineno

    def __str__(self):
        return f"err: {self.kind} at line {self.lineno}: {self.message}"

    def __repr__(self):
        return f"Diagnostic({self.kind}, {self.message!r}, line {self.lineno})"


class BuildContext:
    """All state of one compilation, from the first token to the fixups."""

    def __init__(self, entry_name="main", default_size=DEFAULT_SIZE):
        if default_size not in SIZE_CLASSES.values():
            raise ValueError(f"default size must be one of 1, 2, 4, 8 (got {default_size})")

        self.ir = Context()
        self.compiled = None

        self.entry_name = entry_name
        self.default_size = default_size

        self.current_function = None
        self.current_label = 0
        self.open_labels = []
        self.skip_body = False

        self.autogen_counter = 0
        self.fixups = []
        self.diagnostics = []

        PyvRuntime.append_to_context(self.ir)
        self.runtime_functions = set(self.ir.functions)
        self.queue_memcpy("__name__", MODULE_NAME.encode())

    @property
    def open_blocks(self):
        return len(self.open_labels)

    def report(self, error, lineno):
        diagnostic = Diagnostic(type(error).__name__, error.message, error.lineno or lineno)
        self.diagnostics.append(diagnostic)
        print(diagnostic)

    def user_functions(self):
        return [
            function
            for name, function in self.ir.functions.items()
            if name not in self.runtime_functions
        ]

    def get_variable(self, name):
        reg = self.current_function.fetch_register(name)
        if reg is None:
            reg = self.ir.fetch_global(name)
        if reg is None:
            reg = self.current_function.alloc(name, self.default_size)
        return reg

    def generate_name(self):
        while True:
            name = f"{AUTOGEN_PREFIX}{self.current_function.name}_{self.autogen_counter}"
            self.autogen_counter += 1
            if self.current_function.fetch_register(name) is None and self.ir.fetch_global(name) is None:
                return name

    def queue_memcpy(self, name, data):
        fixup = Fixup(name, data, len(data))
        self.fixups.append(fixup)
        return fixup

    def create_string(self, payload, dst=None):
        data = payload.encode("utf-8")
        raw = self.ir.alloc_global(self.generate_name(), len(data) + 1, read_only=True)
        ptr = dst if dst is not None else self.current_function.alloc(self.generate_name(), SIZEOF_PTR)
        self.queue_memcpy(raw.name, data)
        self.current_function.lea(ptr, raw)
        return ptr


def parse_size(size_class):
    try:
        return SIZE_CLASSES[size_class]
    except KeyError:
        raise ParseError(f"unknown size class '{size_class}'")


def split_lines(tokens):
    line = []
    for tok in tokens:
        if tok.type == "NEWLINE":
            if line:
                yield line
            line = []
        else:
            line.append(tok)
    if line:
        yield line


def indentation(line):
    """Return (depth, statement tokens) for one line."""
    depth = 0
    for index, tok in enumerate(line):
        if tok.type == "TAB":
            depth += 1
        elif tok.type != "WHITESPACE":
            return depth, line[index:]
    return depth, []


def close_blocks(ctx, depth):
    function = ctx.current_function
    if function is None:
        return

    expected = ctx.open_blocks + 1
    if depth > expected:
        raise ParseError("unexpected indentation")

    while depth < expected:
        if ctx.open_labels:
            function.declare_label(ctx.open_labels.pop())
        else:
            # leaving the body closes the function itself
            function.declare_label(ctx.current_label)
            ctx.current_label += 1
            ctx.current_function = None
        expected -= 1


def close_pending(ctx):
    while ctx.open_labels:
        ctx.current_function.declare_label(ctx.open_labels.pop())


def parse_definition(ctx, node, depth):
    if depth != 0:
        raise ParseError("nested function definitions are not supported")

    ctx.current_function = None
    ctx.skip_body = True

    if PyvRuntime.get_implementation_status(node.name) != ImplementationStatus.NOT_IMPLEMENTED:
        raise ParseError(f"'{node.name}' is a builtin")
    if ctx.ir.fetch_function(node.name) or ctx.ir.fetch_global(node.name):
        raise ParseError(f"function '{node.name}' already defined")

    return_size = parse_size(node.return_size_class) if node.return_size_class else ctx.default_size
    params = []
    for param in node.params:
        if any(name == param.identifier for name, _ in params):
            raise ParseError(f"duplicate parameter '{param.identifier}' in '{node.name}'")
        size = parse_size(param.size_class) if param.size_class else ctx.default_size
        params.append((param.identifier, size))

    function = ctx.ir.init_function(node.name, return_size)
    for name, size in params:
        function.alloc(name, size, is_parameter=True, is_volatile=True)

    ctx.current_function = function
    ctx.skip_body = False
    ctx.current_label = 0
    ctx.open_labels = []


def resolve_callee(ctx, node):
    status = PyvRuntime.get_implementation_status(node.call_name)

    if status == ImplementationStatus.SINGLE_DEFINITION:
        callee = PyvRuntime.get(ctx.ir, node.call_name, Implementation.SINGLE)
    elif status == ImplementationStatus.MULTI_DEFINITION:
        first = node.params[0] if node.params else None
        if isinstance(first, Literal) and isinstance(first.value, int):
            implementation = Implementation.FIRST_ARG_INT
        else:
            implementation = Implementation.FIRST_ARG_STRING
        callee = PyvRuntime.get(ctx.ir, node.call_name, implementation)
    else:
        callee = ctx.ir.fetch_function(node.call_name)

    if callee is None:
        raise UnresolvedCallee(f"could not find function '{node.call_name}'")
    return callee


def parse_call(ctx, node, dst=None):
    function = ctx.current_function
    callee = resolve_callee(ctx, node)

    expected = len(callee.parameters)
    if len(node.params) != expected:
        raise ParseError(
            f"'{node.call_name}' takes {expected} argument(s), got {len(node.params)}"
        )

    for arg in node.params:
        if isinstance(arg, str):
            function.push_arg(ctx.get_variable(arg))
        elif isinstance(arg.value, int):
            function.push_arg(arg.value)
        else:
            function.push_arg(ctx.create_string(arg.value))

    if dst is None:
        dst = function.alloc(ctx.generate_name(), ctx.default_size)
    if not dst.is_global:
        dst.size = callee.return_size

    function.call(dst, callee)
    return dst


def parse_assignment(ctx, node):
    function = ctx.current_function
    dst = ctx.get_variable(node.identifier)
    if dst.read_only:
        raise ParseError(f"cannot assign to read-only '{dst.name}'")

    value = node.value
    if isinstance(value, FunctionCall):
        parse_call(ctx, value, dst)
    elif isinstance(value, Literal):
        if isinstance(value.value, int):
            function.store(dst, value.value)
        else:
            ctx.create_string(value.value, dst)
    else:
        function.store(dst, ctx.get_variable(value))


def parse_return(ctx, node):
    function = ctx.current_function
    if isinstance(node.value, Literal):
        function.ret(node.value.value)
    else:
        function.ret(ctx.get_variable(node.value))


def parse_if(ctx, node):
    function = ctx.current_function
    reg = ctx.get_variable(node.identifier)

    function.cmp(reg, node.value.value)

    label = ctx.current_label
    ctx.current_label += 1
    # jump past the block when the written condition does not hold
    if node.operator == "==":
        function.jne(label)
    else:
        function.je(label)

    ctx.open_labels.append(label)


def parse_line(ctx, tokens, depth):
    node = parse_statement(tokens)

    if isinstance(node, FunctionDefinition):
        parse_definition(ctx, node, depth)
        return

    if ctx.current_function is None:
        raise ParseError("statement outside of a function")

    if isinstance(node, FunctionCall):
        parse_call(ctx, node)
    elif isinstance(node, Assignment):
        parse_assignment(ctx, node)
    elif isinstance(node, ReturnStatement):
        parse_return(ctx, node)
    elif isinstance(node, IfStatement):
        parse_if(ctx, node)
    else:
        raise ParseError(f"unsupported statement {node}")


def parse(ctx, tokens):
    """Build IR for *tokens* into *ctx*.

    Every malformed line is reported and skipped; the result is False if
    any line failed.
    """
    status = True

    for line in split_lines(tokens):
        depth, statement = indentation(line)
        if not statement or statement[0].type == "COMMENT":
            continue
        lineno = statement[0].lineno

        if ctx.skip_body:
            if depth > 0:
                continue
            ctx.skip_body = False

        try:
            close_blocks(ctx, depth)
            parse_line(ctx, statement, depth)
        except ParseError as e:
            ctx.report(e, lineno)
            status = False

    # only a following depth-0 line declares the closing label of a body;
    # the last function ends with its pending if labels
    if ctx.current_function is not None:
        close_pending(ctx)

    return status


def find_symbol(symbols, name):
    """Exact name first, then the first symbol containing *name*."""
    for symbol in symbols:
        if symbol.name == name:
            return symbol
    for symbol in symbols:
        if name in symbol.name:
            return symbol
    return None


def build(ctx, target=None):
    """Compile the IR, apply the fixups and return the entry offset.

    Returns None when the entry symbol does not exist.
    """
    compiled = codegen(ctx.ir, target)
    ctx.compiled = compiled

    for fixup in ctx.fixups:
        symbol = find_symbol(compiled.symbols, fixup.dst)
        if symbol is None:
            raise BuildError(f"No symbol for fixup '{fixup.dst}'.")
        compiled.write(symbol.offset, fixup.src[: fixup.length])

    functions = [symbol for symbol in compiled.symbols if symbol.is_function]
    entry = find_symbol(functions, ctx.entry_name)
    if entry is None:
        return None
    return entry.offset


def compile_source(source, entry_name="main", default_size=DEFAULT_SIZE):
    """Tokenize and parse *source*; returns (context, status)."""
    ctx = BuildContext(entry_name, default_size)
    status = parse(ctx, tokenize(source))
    return ctx, status
