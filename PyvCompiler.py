import argparse
import ctypes
import sys

from PyvBuilder import BuildContext, SIZE_CLASSES, build, parse
from PyvCodegen import BuildError
from PyvIR import format_context
from PyvLexer import LexError, tokenize


RESTYPES = {
    1: ctypes.c_uint8,
    2: ctypes.c_uint16,
    4: ctypes.c_uint32,
    8: ctypes.c_uint64,
}


def entry_function(ctx, offset):
    for symbol in ctx.compiled.symbols:
        if symbol.is_function and symbol.offset == offset:
            return ctx.ir.fetch_function(symbol.name)
    return None


def first_user_offset(ctx):
    names = [function.name for function in ctx.user_functions()]
    for symbol in ctx.compiled.symbols:
        if symbol.is_function and symbol.name in names:
            return symbol.offset
    return None


def run(ctx, offset):
    """Call the compiled entry at *offset* with no arguments."""
    function = entry_function(ctx, offset)
    restype = RESTYPES[function.return_size] if function else ctypes.c_uint64
    # the program writes straight to fd 1
    sys.stdout.flush()
    return ctx.compiled.entry(offset, restype)()


def build_parser():
    prs = argparse.ArgumentParser(description="Pyv Compiler")
    prs.add_argument("input", type=str, help="Input source file")

    prs.add_argument(
        "-e", "--entry", type=str, default="main", help="Entry point (default: main)"
    )
    prs.add_argument(
        "-s",
        "--default-size",
        type=int,
        default=8,
        choices=sorted(SIZE_CLASSES.values()),
        help="Size in bytes of variables without a size class",
    )
    prs.add_argument(
        "-u",
        "--unsafe",
        action="store_true",
        help="Run even if parsing failed, falling back to the first function",
    )

    prs.add_argument("--tokens", action="store_true", help="Print the token list")
    prs.add_argument("--ir", action="store_true", help="Print the register IR")
    prs.add_argument("--llvm", action="store_true", help="Print the generated LLVM IR")
    return prs


def main(argv=None):
    args = build_parser().parse_args(argv)

    with open(args.input, "r", encoding="utf-8") as f:
        code = f.read()

    try:
        tokens = tokenize(code)
    except LexError as e:
        print(f"err: {type(e).__name__} at line {e.lineno}: {e.message}")
        return 1

    if args.tokens:
        for tok in tokens:
            print(tok)

    print("Parsing code...")
    ctx = BuildContext(args.entry, args.default_size)
    status = parse(ctx, tokens)
    if not status:
        print(f"err: parsing failed with {len(ctx.diagnostics)} error(s).")
        if not args.unsafe:
            return 1
        print("wrn: continuing in unsafe mode.")

    if args.ir:
        print("--- Register IR ---")
        print(format_context(ctx.ir))
        print("-------------------")

    try:
        offset = build(ctx)
    except BuildError as e:
        print(f"err: {e}")
        return 1

    if args.llvm:
        print("--- Generated LLVM IR ---")
        print(ctx.compiled.llvm_ir)
        print("-------------------------")

    if offset is None:
        if not args.unsafe:
            print(f"err: could not find entry point '{args.entry}'.")
            return 1
        offset = first_user_offset(ctx)
        if offset is None:
            print("err: no function to run.")
            return 1
        print(f"wrn: '{args.entry}' not found, running the first function.")

    print("Running with JIT...")
    result = run(ctx, offset)
    return result & 0xFF


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
