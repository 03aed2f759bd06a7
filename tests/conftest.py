"""
Shared fixtures for the kforge test suite.

write_elf builds small ELF64 little-endian executables with a chosen symbol
table, so symbol extraction can be tested without a cross toolchain.
"""

import struct
from pathlib import Path

import pytest

EM_X86_64 = 62

_SYM_TYPES = {"notype": 0, "object": 1, "func": 2, "section": 3, "file": 4}
_SYM_BINDS = {"local": 0, "global": 1, "weak": 2}
_TEXT_INDEX = 1
_DATA_INDEX = 2
SHN_UNDEF = 0
SHN_ABS = 0xFFF1


def _normalize(symbol):
    """Expand (name, address[, type[, bind[, shndx]]]) into a full tuple."""
    name, address = symbol[0], symbol[1]
    sym_type = symbol[2] if len(symbol) > 2 else "func"
    bind = symbol[3] if len(symbol) > 3 else "global"
    if len(symbol) > 4:
        shndx = symbol[4]
    else:
        shndx = _DATA_INDEX if sym_type == "object" else _TEXT_INDEX
    return name, address, _SYM_TYPES[sym_type], _SYM_BINDS[bind], shndx


def build_elf(symbols=(), with_symtab=True, machine=EM_X86_64) -> bytes:
    """Return the bytes of a minimal ELF64 executable."""
    strtab = bytearray(b"\0")
    symtab = bytearray(struct.pack("<IBBHQQ", 0, 0, 0, 0, 0, 0))
    for symbol in symbols:
        name, address, sym_type, bind, shndx = _normalize(symbol)
        name_offset = len(strtab)
        strtab += name.encode("utf-8") + b"\0"
        symtab += struct.pack(
            "<IBBHQQ", name_offset, (bind << 4) | sym_type, 0, shndx, address, 0
        )

    section_names = [".text", ".data"]
    if with_symtab:
        section_names += [".symtab", ".strtab"]
    section_names.append(".shstrtab")

    shstrtab = bytearray(b"\0")
    name_offsets = {}
    for name in section_names:
        name_offsets[name] = len(shstrtab)
        shstrtab += name.encode("ascii") + b"\0"

    payloads = {
        ".text": bytes(16),
        ".data": bytes(16),
        ".symtab": bytes(symtab),
        ".strtab": bytes(strtab),
        ".shstrtab": bytes(shstrtab),
    }

    body = bytearray()
    offsets = {}
    offset = 64
    for name in section_names:
        while (offset + len(body)) % 8:
            body += b"\0"
        offsets[name] = offset + len(body)
        body += payloads[name]
    while (offset + len(body)) % 8:
        body += b"\0"
    shoff = offset + len(body)

    index = {name: i + 1 for i, name in enumerate(section_names)}
    headers = bytearray(struct.pack("<IIQQQQIIQQ", 0, 0, 0, 0, 0, 0, 0, 0, 0, 0))
    for name in section_names:
        sh_type, sh_flags, sh_link, sh_info, sh_entsize, sh_addr = 1, 0, 0, 0, 0, 0
        if name == ".text":
            sh_flags, sh_addr = 0x6, 0xFFFFFFFF80000000
        elif name == ".data":
            sh_flags, sh_addr = 0x3, 0xFFFFFFFF80100000
        elif name == ".symtab":
            sh_type, sh_link, sh_info, sh_entsize = 2, index[".strtab"], 1, 24
        else:
            sh_type = 3
        headers += struct.pack(
            "<IIQQQQIIQQ",
            name_offsets[name],
            sh_type,
            sh_flags,
            sh_addr,
            offsets[name],
            len(payloads[name]),
            sh_link,
            sh_info,
            8 if name != ".shstrtab" else 1,
            sh_entsize,
        )

    ident = b"\x7fELF" + bytes([2, 1, 1, 0]) + bytes(8)
    header = struct.pack(
        "<16sHHIQQQIHHHHHH",
        ident,
        2,  # ET_EXEC
        machine,
        1,
        0xFFFFFFFF80000000,
        0,
        shoff,
        0,
        64,
        0,
        0,
        64,
        len(section_names) + 1,
        index[".shstrtab"],
    )
    return header + bytes(body) + bytes(headers)


def write_elf_file(path, symbols=(), with_symtab=True) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(build_elf(symbols, with_symtab))
    return path


KERNEL_SYMBOLS = [
    ("kernel_main", 0xFFFFFFFF80001000, "func"),
    ("start_kernel", 0xFFFFFFFF80000400, "func"),
    ("boot_params", 0xFFFFFFFF80100000, "object"),
    ("static_helper", 0xFFFFFFFF80000800, "func", "local"),
    ("_text", 0xFFFFFFFF80000000, "notype"),
    ("printk", 0, "func", "global", SHN_UNDEF),
]


@pytest.fixture
def write_elf():
    """Factory writing a minimal ELF file: write_elf(path, symbols, with_symtab=True)."""
    return write_elf_file


@pytest.fixture
def kernel_symbols():
    """A small symbol set mixing functions, data, locals and undefined entries."""
    return list(KERNEL_SYMBOLS)
