"""
Register-based intermediate representation.

A Context owns the global registers and every function; a Function owns
its registers (parameters first) and an ordered instruction list.  The
builder appends instructions through the helpers on Function and the
backend lowers them without changing them.
"""

import enum


SIZEOF_I8 = 1
SIZEOF_I16 = 2
SIZEOF_I32 = 4
SIZEOF_I64 = 8
SIZEOF_PTR = 8


class Opcode(enum.Enum):
    STORE = 1
    LOAD = 2
    LEA = 3
    CMP = 4
    ADD = 5
    JMP = 6
    JE = 7
    JNE = 8
    DECLABEL = 9
    PSHARG = 10
    CALL = 11
    RET = 12
    SYSCALL = 13


class SyscallArgKind(enum.Enum):
    IMMEDIATE = 1
    REGISTER = 2


class Register:
    def __init__(
        self,
        name,
        size,
        is_parameter=False,
        is_volatile=True,
        is_global=False,
        read_only=False,
    ):
        self.name = name
        self.size = size
        self.is_parameter = is_parameter
        self.is_volatile = is_volatile
        self.is_global = is_global
        self.read_only = read_only

    def __repr__(self):
        flags = []
        if self.is_parameter:
            flags.append("param")
        if self.is_global:
            flags.append("global")
        if self.read_only:
            flags.append("readonly")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        return f"Register({self.name}, {self.size}{suffix})"


class Instruction:
    def __init__(self, opcode, dest=None, source=None, label=None, callee=None, args=None):
        self.opcode = opcode
        self.dest = dest
        self.source = source
        self.label = label
        self.callee = callee
        self.args = args

    def __repr__(self):
        return format_instruction(self)


class Function:
    def __init__(self, name, return_size, native=False):
        self.name = name
        self.return_size = return_size
        # native functions have no body; the process provides the symbol
        self.native = native
        self.registers = []
        self.instructions = []

    def __repr__(self):
        return f"Function({self.name}, returns {self.return_size})"

    @property
    def parameters(self):
        return [reg for reg in self.registers if reg.is_parameter]

    def alloc(self, name, size, is_parameter=False, is_volatile=True):
        if self.fetch_register(name) is not None:
            raise ValueError(f"Register '{name}' already defined in function '{self.name}'.")
        reg = Register(name, size, is_parameter, is_volatile)
        if is_parameter:
            # parameters stay ahead of locals
            index = len(self.parameters)
            self.registers.insert(index, reg)
        else:
            self.registers.append(reg)
        return reg

    def fetch_register(self, name):
        for reg in self.registers:
            if reg.name == name:
                return reg
        return None

    def push(self, instruction):
        self.instructions.append(instruction)
        return instruction

    def store(self, dest, source):
        return self.push(Instruction(Opcode.STORE, dest, source))

    def load(self, dest, source):
        return self.push(Instruction(Opcode.LOAD, dest, source))

    def lea(self, dest, source):
        return self.push(Instruction(Opcode.LEA, dest, source))

    def cmp(self, dest, source):
        return self.push(Instruction(Opcode.CMP, dest, source))

    def add(self, dest, source):
        return self.push(Instruction(Opcode.ADD, dest, source))

    def jmp(self, label):
        return self.push(Instruction(Opcode.JMP, label=label))

    def je(self, label):
        return self.push(Instruction(Opcode.JE, label=label))

    def jne(self, label):
        return self.push(Instruction(Opcode.JNE, label=label))

    def declare_label(self, label):
        return self.push(Instruction(Opcode.DECLABEL, label=label))

    def push_arg(self, source):
        return self.push(Instruction(Opcode.PSHARG, source=source))

    def call(self, dest, callee):
        return self.push(Instruction(Opcode.CALL, dest, callee=callee))

    def ret(self, source):
        return self.push(Instruction(Opcode.RET, source=source))

    def syscall(self, number, args):
        """Append a raw syscall.

        *args* is an ordered list of ``(value, SyscallArgKind)`` pairs where
        the value is an int for IMMEDIATE and a Register for REGISTER.
        """
        return self.push(Instruction(Opcode.SYSCALL, source=number, args=list(args)))


class Context:
    def __init__(self):
        self.functions = {}
        self.globals = {}

    def init_function(self, name, return_size, native=False):
        if name in self.functions:
            raise ValueError(f"Function '{name}' already defined.")
        function = Function(name, return_size, native)
        self.functions[name] = function
        return function

    def alloc_global(self, name, size, read_only=False):
        if name in self.globals:
            raise ValueError(f"Global '{name}' already defined.")
        reg = Register(name, size, is_volatile=False, is_global=True, read_only=read_only)
        self.globals[name] = reg
        return reg

    def fetch_function(self, name):
        return self.functions.get(name)

    def fetch_global(self, name):
        return self.globals.get(name)


def _operand(value):
    if isinstance(value, Register):
        return value.name
    if isinstance(value, Function):
        return value.name
    return str(value)


def format_instruction(ins):
    op = ins.opcode.name.lower()
    if ins.opcode in (Opcode.JMP, Opcode.JE, Opcode.JNE, Opcode.DECLABEL):
        return f"{op} L{ins.label}"
    if ins.opcode in (Opcode.PSHARG, Opcode.RET):
        return f"{op} {_operand(ins.source)}"
    if ins.opcode == Opcode.CALL:
        return f"{op} {_operand(ins.dest)}, {_operand(ins.callee)}"
    if ins.opcode == Opcode.SYSCALL:
        args = ", ".join(_operand(value) for value, _ in ins.args)
        return f"{op} {ins.source}({args})"
    return f"{op} {_operand(ins.dest)}, {_operand(ins.source)}"


def format_context(context):
    lines = []
    for reg in context.globals.values():
        ro = " readonly" if reg.read_only else ""
        lines.append(f"global {reg.name}[{reg.size}]{ro}")
    for function in context.functions.values():
        params = ", ".join(f"{reg.name}:{reg.size}" for reg in function.parameters)
        header = f"fn {function.name}({params}) -> {function.return_size}"
        if function.native:
            lines.append(header + " native")
            continue
        lines.append(header + ":")
        for reg in function.registers:
            if not reg.is_parameter:
                lines.append(f"    reg {reg.name}:{reg.size}")
        for ins in function.instructions:
            if ins.opcode == Opcode.DECLABEL:
                lines.append(f"  L{ins.label}:")
            else:
                lines.append(f"    {format_instruction(ins)}")
    return "\n".join(lines)
