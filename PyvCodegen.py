"""
llvmlite backend for the register IR.

Every local register becomes an alloca of its width, globals become
zero-initialised byte arrays so deferred fixups can fill them after the
JIT has laid them out.  The compiled image lives in an MCJIT engine;
CompiledData keeps the engine alive and exposes the exported symbols.
"""

import ctypes

from llvmlite import binding
from llvmlite import ir

from PyvIR import Opcode, Register, SyscallArgKind


I64 = ir.IntType(64)

SYSCALL_REGISTERS = ("rdi", "rsi", "rdx", "r10", "r8", "r9")


class BuildError(Exception):
    pass


class Target:
    def __init__(self, triple=None, abi="sysv"):
        self.triple = triple or binding.get_default_triple()
        self.abi = abi

    def __repr__(self):
        return f"Target({self.triple}, {self.abi})"

    @property
    def is_x86_64(self):
        return self.triple.split("-")[0] in ("x86_64", "amd64")


class Symbol:
    def __init__(self, name, offset, is_function):
        self.name = name
        self.offset = offset
        self.is_function = is_function

    def __repr__(self):
        kind = "function" if self.is_function else "global"
        return f"Symbol({self.name}, {kind}, {self.offset:#x})"


class CompiledData:
    """The JIT image of one context.

    Symbol offsets are absolute process addresses, so ``base`` is 0.
    """

    def __init__(self, engine, llvm_ir, symbols):
        self.engine = engine
        self.llvm_ir = llvm_ir
        self.symbols = symbols
        self.base = 0

    def write(self, offset, data):
        ctypes.memmove(self.base + offset, data, len(data))

    def read(self, offset, length):
        return ctypes.string_at(self.base + offset, length)

    def entry(self, offset, restype=ctypes.c_uint64):
        return ctypes.CFUNCTYPE(restype)(self.base + offset)


class Codegen:
    def __init__(self, context, target=None):
        binding.initialize_native_target()
        binding.initialize_native_asmprinter()
        # the runtime's inline asm is parsed when the object is emitted
        binding.initialize_native_asmparser()

        self.context = context
        self.target = target or Target()

        self.module = ir.Module(name="pyvscc_module")
        try:
            self.target_machine = binding.Target.from_triple(
                self.target.triple
            ).create_target_machine()
        except RuntimeError as e:
            raise BuildError(f"Cannot create a target machine for '{self.target.triple}': {e}")
        self.module.triple = self.target.triple
        self.module.data_layout = str(self.target_machine.target_data)

        self.llvm_functions = {}
        self.llvm_globals = {}

        self.function = None
        self.builder = None
        self.slots = {}
        self.labels = {}
        self.declared_labels = set()
        self.pending_args = []
        self.condition = None

    def compile(self):
        for reg in self.context.globals.values():
            self.create_global(reg)
        for function in self.context.functions.values():
            self.declare_function(function)
        for function in self.context.functions.values():
            if not function.native:
                self.compile_function(function)
        return self.module

    def generate_ir(self):
        return str(self.module)

    def create_global(self, reg):
        str_ty = ir.ArrayType(ir.IntType(8), reg.size)
        gvar = ir.GlobalVariable(self.module, str_ty, name=reg.name)
        # writable even when read_only: fixups land after layout
        gvar.initializer = ir.Constant(str_ty, None)
        gvar.align = 8
        self.llvm_globals[reg.name] = gvar
        return gvar

    def declare_function(self, function):
        ret_type = self.int_type(function.return_size, function.name)
        arg_types = [self.int_type(reg.size, reg.name) for reg in function.parameters]
        func_type = ir.FunctionType(ret_type, arg_types)
        llvm_function = ir.Function(self.module, func_type, name=function.name)
        self.llvm_functions[function.name] = llvm_function
        return llvm_function

    def int_type(self, size, owner):
        if size not in (1, 2, 4, 8):
            raise BuildError(f"'{owner}' has unsupported size {size}.")
        return ir.IntType(size * 8)

    def create_block(self, name=""):
        block = self.function.append_basic_block(name)
        self.builder.position_at_end(block)
        return block

    def compile_function(self, function):
        self.function = self.llvm_functions[function.name]
        entry = self.function.append_basic_block(function.name + "_entry")
        self.builder = ir.IRBuilder(entry)

        self.slots = {}
        self.labels = {}
        self.declared_labels = set()
        self.pending_args = []
        self.condition = None

        for reg in function.registers:
            self.slots[reg.name] = self.builder.alloca(
                self.int_type(reg.size, reg.name), name=reg.name
            )
        for arg, reg in zip(self.function.args, function.parameters):
            self.builder.store(arg, self.slots[reg.name])

        for ins in function.instructions:
            self.lower(function, ins)

        if not self.builder.block.is_terminated:
            self.builder.ret(ir.Constant(self.function.function_type.return_type, 0))

        missing = sorted(set(self.labels) - self.declared_labels)
        if missing:
            raise BuildError(
                f"Function '{function.name}' jumps to undeclared label(s) {missing}."
            )

    def label_block(self, label):
        if label not in self.labels:
            self.labels[label] = self.function.append_basic_block(f"L{label}")
        return self.labels[label]

    def slot(self, reg):
        try:
            return self.slots[reg.name]
        except KeyError:
            raise BuildError(f"Register '{reg.name}' does not belong to '{self.function.name}'.")

    def coerce(self, value, typ):
        if value.type.width == typ.width:
            return value
        if value.type.width > typ.width:
            return self.builder.trunc(value, typ)
        return self.builder.zext(value, typ)

    def immediate(self, value, typ):
        bits = typ.width
        value &= (1 << bits) - 1
        if value >= 1 << (bits - 1):
            value -= 1 << bits
        return ir.Constant(typ, value)

    def address_of(self, reg):
        if reg.is_global:
            return self.builder.ptrtoint(self.llvm_globals[reg.name], I64)
        return self.builder.ptrtoint(self.slot(reg), I64)

    def get_value(self, operand, typ):
        if isinstance(operand, Register):
            if operand.is_global:
                # a global used as a value is its address
                return self.coerce(self.address_of(operand), typ)
            return self.coerce(self.builder.load(self.slot(operand)), typ)
        return self.immediate(operand, typ)

    def set_value(self, reg, value):
        if reg.is_global:
            typ = ir.IntType(min(reg.size, 8) * 8)
            ptr = self.builder.bitcast(self.llvm_globals[reg.name], typ.as_pointer())
        else:
            ptr = self.slot(reg)
            typ = ptr.type.pointee
        self.builder.store(self.coerce(value, typ), ptr)

    def dest_type(self, reg):
        if reg.is_global:
            return ir.IntType(min(reg.size, 8) * 8)
        return self.slot(reg).type.pointee

    def lower(self, function, ins):
        op = ins.opcode
        if op == Opcode.STORE:
            self.set_value(ins.dest, self.get_value(ins.source, self.dest_type(ins.dest)))
        elif op == Opcode.LOAD:
            typ = self.dest_type(ins.dest)
            address = self.get_value(ins.source, I64)
            ptr = self.builder.inttoptr(address, typ.as_pointer())
            self.set_value(ins.dest, self.builder.load(ptr))
        elif op == Opcode.LEA:
            self.set_value(ins.dest, self.address_of(ins.source))
        elif op == Opcode.CMP:
            lhs = self.get_value(ins.dest, I64)
            rhs = self.get_value(ins.source, I64)
            self.condition = self.builder.icmp_signed("==", lhs, rhs)
        elif op == Opcode.ADD:
            typ = self.dest_type(ins.dest)
            total = self.builder.add(self.get_value(ins.dest, typ), self.get_value(ins.source, typ))
            self.set_value(ins.dest, total)
        elif op == Opcode.JMP:
            self.builder.branch(self.label_block(ins.label))
            self.create_block()
        elif op in (Opcode.JE, Opcode.JNE):
            if self.condition is None:
                raise BuildError(f"'{function.name}': {op.name.lower()} without a preceding cmp.")
            target = self.label_block(ins.label)
            fallthrough = self.function.append_basic_block()
            if op == Opcode.JE:
                self.builder.cbranch(self.condition, target, fallthrough)
            else:
                self.builder.cbranch(self.condition, fallthrough, target)
            self.builder.position_at_end(fallthrough)
        elif op == Opcode.DECLABEL:
            if ins.label in self.declared_labels:
                raise BuildError(f"'{function.name}': label L{ins.label} declared twice.")
            block = self.label_block(ins.label)
            self.declared_labels.add(ins.label)
            if not self.builder.block.is_terminated:
                self.builder.branch(block)
            self.builder.position_at_end(block)
        elif op == Opcode.PSHARG:
            self.pending_args.append(self.get_value(ins.source, I64))
        elif op == Opcode.CALL:
            self.compile_call(ins)
        elif op == Opcode.RET:
            ret_type = self.function.function_type.return_type
            self.builder.ret(self.get_value(ins.source, ret_type))
            self.create_block()
        elif op == Opcode.SYSCALL:
            self.compile_syscall(function, ins)
        else:
            raise BuildError(f"Unsupported opcode {op}.")

    def compile_call(self, ins):
        callee = self.llvm_functions[ins.callee.name]
        arg_types = callee.function_type.args
        if len(self.pending_args) != len(arg_types):
            raise BuildError(
                f"Call to '{ins.callee.name}' passes {len(self.pending_args)} "
                f"argument(s), expected {len(arg_types)}."
            )
        args = [self.coerce(arg, typ) for arg, typ in zip(self.pending_args, arg_types)]
        self.pending_args = []
        result = self.builder.call(callee, args)
        self.set_value(ins.dest, result)

    def compile_syscall(self, function, ins):
        if not self.target.is_x86_64:
            raise BuildError(
                f"'{function.name}': syscall lowering needs an x86-64 target, got '{self.target.triple}'."
            )
        if len(ins.args) > len(SYSCALL_REGISTERS):
            raise BuildError(f"'{function.name}': syscall takes at most {len(SYSCALL_REGISTERS)} arguments.")

        values = [ir.Constant(I64, ins.source)]
        for value, kind in ins.args:
            if kind == SyscallArgKind.REGISTER:
                values.append(self.get_value(value, I64))
            else:
                values.append(self.immediate(value, I64))

        inputs = ["{rax}"] + ["{%s}" % reg for reg in SYSCALL_REGISTERS[: len(ins.args)]]
        constraint = ",".join(["={rax}"] + inputs + ["~{rcx}", "~{r11}", "~{memory}"])
        asm_type = ir.FunctionType(I64, [I64] * len(values))
        self.builder.asm(asm_type, "syscall", constraint, values, side_effect=True)

    def jit(self):
        llvm_ir = self.generate_ir()
        try:
            llvm_module = binding.parse_assembly(llvm_ir)
            llvm_module.verify()
        except RuntimeError as e:
            raise BuildError(f"Failed to parse LLVM IR: {e}")

        engine = binding.create_mcjit_compiler(llvm_module, self.target_machine)
        engine.finalize_object()
        engine.run_static_constructors()

        symbols = []
        for function in self.context.functions.values():
            if function.native:
                continue
            symbols.append(Symbol(function.name, engine.get_function_address(function.name), True))
        for reg in self.context.globals.values():
            symbols.append(Symbol(reg.name, engine.get_global_value_address(reg.name), False))
        return CompiledData(engine, llvm_ir, symbols)


def codegen(context, target=None):
    """Lower *context* and compile it in-process."""
    generator = Codegen(context, target)
    generator.compile()
    return generator.jit()
