"""
Builtin runtime: the functions a source program can call without
defining them, and the table the builder uses to pick one.

pyimpl_strlen and pyimpl_print_str are written in the IR itself and are
compiled together with the program.  pyimpl_print_int has no IR body; its
native implementation is a ctypes callback registered with the JIT.
"""

import ctypes
import enum
import os

from llvmlite import binding

from PyvIR import SIZEOF_I8, SIZEOF_I64, SIZEOF_PTR, SyscallArgKind


SYS_WRITE = 1
STDOUT_FILENO = 1
NAME_SIZE = 16


class ImplementationStatus(enum.Enum):
    NOT_IMPLEMENTED = 1
    SINGLE_DEFINITION = 2
    MULTI_DEFINITION = 3


class Implementation(enum.Enum):
    SINGLE = 1
    FIRST_ARG_INT = 2
    FIRST_ARG_STRING = 3


dispatch_table = (
    ("print", "pyimpl_print_str", Implementation.FIRST_ARG_STRING),
    ("print", "pyimpl_print_int", Implementation.FIRST_ARG_INT),
    ("strlen", "pyimpl_strlen", Implementation.SINGLE),
)


def _print_int(value):
    data = str(value).encode()
    os.write(STDOUT_FILENO, data)
    return len(data)


_PRINT_INT_TYPE = ctypes.CFUNCTYPE(ctypes.c_int64, ctypes.c_int64)

# module level so the callbacks outlive every JIT engine that calls them
native_implementations = {
    "pyimpl_print_int": _PRINT_INT_TYPE(_print_int),
}


def install_native_symbols():
    for name, callback in native_implementations.items():
        binding.add_symbol(name, ctypes.cast(callback, ctypes.c_void_p).value)


def add_pyimpl_strlen(ctx):
    strlen = ctx.init_function("pyimpl_strlen", SIZEOF_I64)

    string = strlen.alloc("str", SIZEOF_PTR, is_parameter=True, is_volatile=False)
    length = strlen.alloc("length", SIZEOF_I64, is_volatile=False)
    deref = strlen.alloc("deref_char", SIZEOF_I8, is_volatile=False)

    strlen.store(length, 0)
    strlen.declare_label(0)
    strlen.load(deref, string)
    strlen.cmp(deref, 0)
    strlen.je(1)
    strlen.add(string, 1)
    strlen.add(length, 1)
    strlen.jmp(0)
    strlen.declare_label(1)
    strlen.ret(length)
    return strlen


def add_pyimpl_print_str(ctx):
    print_str = ctx.init_function("pyimpl_print_str", SIZEOF_I64)

    string = print_str.alloc("str", SIZEOF_PTR, is_parameter=True, is_volatile=False)
    length = print_str.alloc("length", SIZEOF_I64, is_volatile=False)

    print_str.push_arg(string)
    print_str.call(length, ctx.fetch_function("pyimpl_strlen"))
    print_str.syscall(
        SYS_WRITE,
        [
            (STDOUT_FILENO, SyscallArgKind.IMMEDIATE),
            (string, SyscallArgKind.REGISTER),
            (length, SyscallArgKind.REGISTER),
        ],
    )
    print_str.ret(length)
    return print_str


def add_pyimpl_print_int(ctx):
    print_int = ctx.init_function("pyimpl_print_int", SIZEOF_I64, native=True)
    print_int.alloc("value", SIZEOF_I64, is_parameter=True, is_volatile=False)
    return print_int


def append_to_context(ctx):
    """Install the runtime globals and builtin functions into *ctx*."""
    ctx.alloc_global("__name__", NAME_SIZE)

    add_pyimpl_strlen(ctx)
    add_pyimpl_print_str(ctx)
    add_pyimpl_print_int(ctx)

    install_native_symbols()


def get(ctx, fn, implementation):
    for name, impl_name, impl in dispatch_table:
        if name == fn and impl == implementation:
            return ctx.fetch_function(impl_name)
    return None


def get_implementation_status(fn):
    count = sum(1 for name, _, _ in dispatch_table if name == fn)
    if count == 0:
        return ImplementationStatus.NOT_IMPLEMENTED
    if count == 1:
        return ImplementationStatus.SINGLE_DEFINITION
    return ImplementationStatus.MULTI_DEFINITION
