"""
cdelta/c_types.py
═════════════════

C type representation and the handful of typing rules the expression
detector needs: literal typing, integer promotion, the usual arithmetic
conversions and operator result types.

Types are modelled as a small term algebra:

    τ ::= void | _Bool | char | signed char | unsigned char
        | short | int | long | long long   (signed / unsigned)
        | float | double | long double
        | ptr(τ) | array(τ, n) | func(τ_ret, [τ_1, …, τ_n])
        | struct(record) | union(record) | enum(tag)
        | qualified(τ, quals)
        | typedef(name, τ)

Typedef and qualifier layers are kept so that a declaration for a value
of type τ can be spelled the way the program spells it; every predicate
looks through them via :attr:`CType.unqualified`.

The target model is LP64 (``int`` 32 bits, ``long`` and ``long long`` 64
bits, plain ``char`` signed).
"""

from __future__ import annotations

import math
import re
import struct
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import (
    TYPE_CHECKING,
    ClassVar,
    Dict,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
)

if TYPE_CHECKING:
    from cdelta.ast_model import Decl


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — TYPE REPRESENTATION
# ═════════════════════════════════════════════════════════════════════════

class TypeKind(Enum):
    """Discriminant for the type term algebra."""
    VOID = auto()
    BOOL = auto()
    CHAR = auto()
    SCHAR = auto()
    UCHAR = auto()
    SHORT = auto()
    USHORT = auto()
    INT = auto()
    UINT = auto()
    LONG = auto()
    ULONG = auto()
    LONG_LONG = auto()
    ULONG_LONG = auto()
    FLOAT = auto()
    DOUBLE = auto()
    LONG_DOUBLE = auto()
    PTR = auto()           # ptr(τ)
    ARRAY = auto()         # array(τ, n)
    FUNC = auto()          # func(ret, [params...], variadic?)
    STRUCT = auto()
    UNION = auto()
    ENUM = auto()
    QUALIFIED = auto()     # qualified(τ, quals)
    TYPEDEF = auto()       # typedef(name, τ)


class Qualifier(Enum):
    CONST = auto()
    VOLATILE = auto()
    RESTRICT = auto()
    ATOMIC = auto()

    @property
    def spelling(self) -> str:
        return _QUALIFIER_SPELLING[self]


_QUALIFIER_SPELLING: Dict[Qualifier, str] = {
    Qualifier.CONST: "const",
    Qualifier.VOLATILE: "volatile",
    Qualifier.RESTRICT: "restrict",
    Qualifier.ATOMIC: "_Atomic",
}

QUALIFIER_KEYWORDS: Dict[str, Qualifier] = {
    "const": Qualifier.CONST,
    "volatile": Qualifier.VOLATILE,
    "restrict": Qualifier.RESTRICT,
    "__restrict": Qualifier.RESTRICT,
    "__restrict__": Qualifier.RESTRICT,
    "_Atomic": Qualifier.ATOMIC,
}


@dataclass(eq=False)
class RecordInfo:
    """
    A struct or union definition.

    Records compare by identity: two ``struct S`` types refer to the same
    record exactly when they share the ``RecordInfo`` object.  Fields map
    member names to their FIELD declarations, in declaration order.
    """
    kind: TypeKind
    tag: str = ""
    fields: Dict[str, "Decl"] = field(default_factory=dict)
    complete: bool = False

    def lookup(self, name: str) -> Optional["Decl"]:
        return self.fields.get(name)


@dataclass
class CType:
    """
    A node in the type term algebra.

    For compound types the children encode structure:
      - PTR:       children[0] = pointee type
      - ARRAY:     children[0] = element type; array_size = length or -1
      - FUNC:      children[0] = return type; children[1:] = param types
      - STRUCT:    record = RecordInfo
      - UNION:     record = RecordInfo
      - QUALIFIED: children[0] = underlying type; qualifiers = set
      - TYPEDEF:   children[0] = aliased type; typedef_name = str
    """

    kind: TypeKind
    children: List[CType] = field(default_factory=list)

    # ── Kind-specific attributes ─────────────────────────────────────
    tag: str = ""                              # STRUCT / UNION / ENUM
    record: Optional[RecordInfo] = None        # STRUCT / UNION
    qualifiers: Set[Qualifier] = field(default_factory=set)      # QUALIFIED
    typedef_name: str = ""                     # TYPEDEF
    array_size: int = -1                       # ARRAY (-1 = unknown)
    is_variadic: bool = False                  # FUNC
    sign: Optional[str] = None                 # "signed" / "unsigned" / None

    # ── Factory methods ──────────────────────────────────────────────

    @classmethod
    def void(cls) -> CType:
        return cls(kind=TypeKind.VOID)

    @classmethod
    def bool_type(cls) -> CType:
        return cls(kind=TypeKind.BOOL, sign="unsigned")

    @classmethod
    def char_type(cls, signed: Optional[bool] = None) -> CType:
        if signed is True:
            return cls(kind=TypeKind.SCHAR, sign="signed")
        if signed is False:
            return cls(kind=TypeKind.UCHAR, sign="unsigned")
        return cls(kind=TypeKind.CHAR)

    @classmethod
    def int_type(cls, signed: bool = True) -> CType:
        return cls(
            kind=TypeKind.UINT if not signed else TypeKind.INT,
            sign="unsigned" if not signed else "signed",
        )

    @classmethod
    def short_type(cls, signed: bool = True) -> CType:
        return cls(
            kind=TypeKind.USHORT if not signed else TypeKind.SHORT,
            sign="unsigned" if not signed else "signed",
        )

    @classmethod
    def long_type(cls, signed: bool = True) -> CType:
        return cls(
            kind=TypeKind.ULONG if not signed else TypeKind.LONG,
            sign="unsigned" if not signed else "signed",
        )

    @classmethod
    def long_long_type(cls, signed: bool = True) -> CType:
        return cls(
            kind=TypeKind.ULONG_LONG if not signed else TypeKind.LONG_LONG,
            sign="unsigned" if not signed else "signed",
        )

    @classmethod
    def float_type(cls) -> CType:
        return cls(kind=TypeKind.FLOAT)

    @classmethod
    def double_type(cls) -> CType:
        return cls(kind=TypeKind.DOUBLE)

    @classmethod
    def long_double_type(cls) -> CType:
        return cls(kind=TypeKind.LONG_DOUBLE)

    @classmethod
    def of_kind(cls, kind: TypeKind) -> CType:
        """Build a builtin arithmetic type from its kind."""
        if kind in _UNSIGNED_KINDS:
            return cls(kind=kind, sign="unsigned")
        if kind in _SIGNED_KINDS:
            return cls(kind=kind, sign="signed")
        return cls(kind=kind)

    @classmethod
    def ptr(cls, pointee: CType) -> CType:
        return cls(kind=TypeKind.PTR, children=[pointee])

    @classmethod
    def array(cls, element: CType, size: int = -1) -> CType:
        return cls(kind=TypeKind.ARRAY, children=[element], array_size=size)

    @classmethod
    def func(
        cls,
        ret: CType,
        params: Optional[List[CType]] = None,
        variadic: bool = False,
    ) -> CType:
        children = [ret] + (params or [])
        return cls(kind=TypeKind.FUNC, children=children, is_variadic=variadic)

    @classmethod
    def record_type(cls, record: RecordInfo) -> CType:
        return cls(kind=record.kind, tag=record.tag, record=record)

    @classmethod
    def enum_type(cls, tag: str) -> CType:
        return cls(kind=TypeKind.ENUM, tag=tag, sign="signed")

    @classmethod
    def qualified(cls, base: CType, quals: Set[Qualifier]) -> CType:
        if not quals:
            return base
        # Merge qualifiers if base is already qualified
        if base.kind == TypeKind.QUALIFIED:
            merged = base.qualifiers | quals
            return cls(
                kind=TypeKind.QUALIFIED,
                children=[base.children[0]],
                qualifiers=merged,
            )
        return cls(kind=TypeKind.QUALIFIED, children=[base], qualifiers=set(quals))

    @classmethod
    def typedef(cls, name: str, underlying: CType) -> CType:
        return cls(
            kind=TypeKind.TYPEDEF,
            children=[underlying],
            typedef_name=name,
        )

    # ── Predicates ───────────────────────────────────────────────────

    @property
    def is_integer(self) -> bool:
        return self.unqualified.kind in _INTEGER_KINDS

    @property
    def is_floating(self) -> bool:
        return self.unqualified.kind in _FLOATING_KINDS

    @property
    def is_arithmetic(self) -> bool:
        return self.is_integer or self.is_floating

    @property
    def is_pointer(self) -> bool:
        return self.unqualified.kind == TypeKind.PTR

    @property
    def is_array(self) -> bool:
        return self.unqualified.kind == TypeKind.ARRAY

    @property
    def is_function(self) -> bool:
        return self.unqualified.kind == TypeKind.FUNC

    @property
    def is_record(self) -> bool:
        return self.unqualified.kind in (TypeKind.STRUCT, TypeKind.UNION)

    @property
    def is_void(self) -> bool:
        return self.unqualified.kind == TypeKind.VOID

    @property
    def is_volatile(self) -> bool:
        """True when the object itself (not a pointee) is volatile."""
        t: Optional[CType] = self
        while t is not None:
            if t.kind == TypeKind.QUALIFIED:
                if Qualifier.VOLATILE in t.qualifiers:
                    return True
                t = t.children[0]
            elif t.kind == TypeKind.TYPEDEF:
                t = t.children[0]
            else:
                return False
        return False

    @property
    def unqualified(self) -> CType:
        """Strip top-level qualifiers and typedef sugar."""
        t = self
        while t.kind in (TypeKind.QUALIFIED, TypeKind.TYPEDEF):
            t = t.children[0]
        return t

    @property
    def pointee(self) -> Optional[CType]:
        unq = self.unqualified
        if unq.kind == TypeKind.PTR:
            return unq.children[0]
        return None

    @property
    def element_type(self) -> Optional[CType]:
        unq = self.unqualified
        if unq.kind == TypeKind.ARRAY:
            return unq.children[0]
        return None

    @property
    def return_type(self) -> Optional[CType]:
        unq = self.unqualified
        if unq.kind == TypeKind.FUNC and unq.children:
            return unq.children[0]
        return None

    # ── Integer conversion rank (C11 §6.3.1.1) ──────────────────────

    _INTEGER_RANK: ClassVar[Dict[TypeKind, int]] = {
        TypeKind.BOOL: 0,
        TypeKind.CHAR: 1, TypeKind.SCHAR: 1, TypeKind.UCHAR: 1,
        TypeKind.SHORT: 2, TypeKind.USHORT: 2,
        TypeKind.INT: 3, TypeKind.UINT: 3,
        TypeKind.LONG: 4, TypeKind.ULONG: 4,
        TypeKind.LONG_LONG: 5, TypeKind.ULONG_LONG: 5,
        TypeKind.ENUM: 3,  # enums have rank of int
    }

    @property
    def integer_rank(self) -> int:
        return self._INTEGER_RANK.get(self.unqualified.kind, -1)

    @property
    def bit_width(self) -> int:
        """Storage width in bits for arithmetic types (LP64), 0 otherwise."""
        return _BIT_WIDTH.get(self.unqualified.kind, 0)

    # ── Spelling ─────────────────────────────────────────────────────

    def spelling(self) -> str:
        """C spelling of the type, keeping typedef names and qualifiers."""
        return _spell(self)

    def declare(self, name: str) -> str:
        """Spell a declaration of *name* with this type."""
        return f"{_spell(self)} {name}"

    def format_specifier(self) -> Optional[str]:
        """
        ``printf`` conversion (without the ``%``) for a value of this type.

        Returns None for non-arithmetic types.
        """
        return _FORMAT_SPECIFIERS.get(self.unqualified.kind)

    def __repr__(self) -> str:
        return _spell(self)


_INTEGER_KINDS = frozenset({
    TypeKind.BOOL, TypeKind.CHAR, TypeKind.SCHAR, TypeKind.UCHAR,
    TypeKind.SHORT, TypeKind.USHORT, TypeKind.INT, TypeKind.UINT,
    TypeKind.LONG, TypeKind.ULONG, TypeKind.LONG_LONG, TypeKind.ULONG_LONG,
    TypeKind.ENUM,
})

_FLOATING_KINDS = frozenset({
    TypeKind.FLOAT, TypeKind.DOUBLE, TypeKind.LONG_DOUBLE,
})

_UNSIGNED_KINDS = frozenset({
    TypeKind.BOOL, TypeKind.UCHAR, TypeKind.USHORT, TypeKind.UINT,
    TypeKind.ULONG, TypeKind.ULONG_LONG,
})

_SIGNED_KINDS = frozenset({
    TypeKind.SCHAR, TypeKind.SHORT, TypeKind.INT, TypeKind.LONG,
    TypeKind.LONG_LONG,
})

_BIT_WIDTH: Dict[TypeKind, int] = {
    TypeKind.BOOL: 8,
    TypeKind.CHAR: 8, TypeKind.SCHAR: 8, TypeKind.UCHAR: 8,
    TypeKind.SHORT: 16, TypeKind.USHORT: 16,
    TypeKind.INT: 32, TypeKind.UINT: 32, TypeKind.ENUM: 32,
    TypeKind.LONG: 64, TypeKind.ULONG: 64,
    TypeKind.LONG_LONG: 64, TypeKind.ULONG_LONG: 64,
    TypeKind.FLOAT: 32, TypeKind.DOUBLE: 64, TypeKind.LONG_DOUBLE: 128,
}

_FORMAT_SPECIFIERS: Dict[TypeKind, str] = {
    TypeKind.BOOL: "u",
    TypeKind.UCHAR: "u",
    TypeKind.USHORT: "u",
    TypeKind.UINT: "u",
    TypeKind.CHAR: "d",
    TypeKind.SCHAR: "d",
    TypeKind.SHORT: "d",
    TypeKind.INT: "d",
    TypeKind.ENUM: "d",
    TypeKind.ULONG: "lu",
    TypeKind.LONG: "ld",
    TypeKind.ULONG_LONG: "llu",
    TypeKind.LONG_LONG: "lld",
    TypeKind.FLOAT: "f",
    TypeKind.DOUBLE: "f",
    TypeKind.LONG_DOUBLE: "Lf",
}

_BUILTIN_SPELLING: Dict[TypeKind, str] = {
    TypeKind.VOID: "void",
    TypeKind.BOOL: "_Bool",
    TypeKind.CHAR: "char",
    TypeKind.SCHAR: "signed char",
    TypeKind.UCHAR: "unsigned char",
    TypeKind.SHORT: "short",
    TypeKind.USHORT: "unsigned short",
    TypeKind.INT: "int",
    TypeKind.UINT: "unsigned int",
    TypeKind.LONG: "long",
    TypeKind.ULONG: "unsigned long",
    TypeKind.LONG_LONG: "long long",
    TypeKind.ULONG_LONG: "unsigned long long",
    TypeKind.FLOAT: "float",
    TypeKind.DOUBLE: "double",
    TypeKind.LONG_DOUBLE: "long double",
}


def _spell(t: CType, depth: int = 0) -> str:
    if depth > 20:
        return "..."
    k = t.kind
    if k in _BUILTIN_SPELLING:
        return _BUILTIN_SPELLING[k]
    if k == TypeKind.TYPEDEF:
        return t.typedef_name
    if k == TypeKind.QUALIFIED:
        qs = " ".join(q.spelling
                      for q in sorted(t.qualifiers, key=lambda q: q.value))
        return f"{qs} {_spell(t.children[0], depth + 1)}"
    if k in (TypeKind.STRUCT, TypeKind.UNION):
        keyword = "struct" if k == TypeKind.STRUCT else "union"
        return f"{keyword} {t.tag}" if t.tag else f"{keyword} <anonymous>"
    if k == TypeKind.ENUM:
        # An anonymous enum cannot be named again; its values are ints.
        return f"enum {t.tag}" if t.tag else "int"
    if k == TypeKind.PTR:
        return f"{_spell(t.children[0], depth + 1)} *"
    if k == TypeKind.ARRAY:
        sz = str(t.array_size) if t.array_size >= 0 else ""
        return f"{_spell(t.children[0], depth + 1)} [{sz}]"
    if k == TypeKind.FUNC:
        ret = _spell(t.children[0], depth + 1)
        params = ", ".join(_spell(p, depth + 1) for p in t.children[1:])
        va = ", ..." if t.is_variadic else ""
        return f"{ret} ({params}{va})"
    return f"<{k.name}>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — BUILTIN TYPE NAMES
# ═════════════════════════════════════════════════════════════════════════
#
#  Type specifier keyword sets ("unsigned long int", "signed char", ...)
#  and the fixed-width typedef names that tree-sitter reports as
#  primitive types.
# ═════════════════════════════════════════════════════════════════════════

STANDARD_TYPEDEFS: Dict[str, TypeKind] = {
    "size_t": TypeKind.ULONG,
    "ssize_t": TypeKind.LONG,
    "ptrdiff_t": TypeKind.LONG,
    "intptr_t": TypeKind.LONG,
    "uintptr_t": TypeKind.ULONG,
    "intmax_t": TypeKind.LONG,
    "uintmax_t": TypeKind.ULONG,
    "int8_t": TypeKind.SCHAR,
    "uint8_t": TypeKind.UCHAR,
    "int16_t": TypeKind.SHORT,
    "uint16_t": TypeKind.USHORT,
    "int32_t": TypeKind.INT,
    "uint32_t": TypeKind.UINT,
    "int64_t": TypeKind.LONG,
    "uint64_t": TypeKind.ULONG,
    "char8_t": TypeKind.UCHAR,
    "char16_t": TypeKind.USHORT,
    "char32_t": TypeKind.UINT,
    "wchar_t": TypeKind.INT,
}


def builtin_from_keywords(words: Sequence[str]) -> Optional[CType]:
    """
    Resolve a multiset of type-specifier keywords to a builtin type.

    Args:
        words: keywords such as ``["unsigned", "long", "int"]``

    Returns:
        The builtin type, or None if the combination names no builtin.
    """
    signed = unsigned = short = False
    longs = 0
    base = ""
    for w in words:
        if w in ("signed", "__signed", "__signed__"):
            signed = True
        elif w == "unsigned":
            unsigned = True
        elif w == "short":
            short = True
        elif w == "long":
            longs += 1
        elif w in ("int", "char", "float", "double", "void", "_Bool", "bool"):
            base = w
        elif w in STANDARD_TYPEDEFS:
            return CType.typedef(w, CType.of_kind(STANDARD_TYPEDEFS[w]))
        else:
            return None

    if base == "void":
        return CType.void()
    if base in ("_Bool", "bool"):
        return CType.bool_type()
    if base == "float":
        return CType.float_type()
    if base == "double":
        return CType.long_double_type() if longs else CType.double_type()
    if base == "char":
        if unsigned:
            return CType.char_type(signed=False)
        if signed:
            return CType.char_type(signed=True)
        return CType.char_type()
    if short:
        return CType.short_type(signed=not unsigned)
    if longs >= 2:
        return CType.long_long_type(signed=not unsigned)
    if longs == 1:
        return CType.long_type(signed=not unsigned)
    if base == "int" or signed or unsigned:
        return CType.int_type(signed=not unsigned)
    return None


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CONVERSIONS  (C11 §6.3)
# ═════════════════════════════════════════════════════════════════════════

def integer_promote(t: CType) -> CType:
    """
    C11 §6.3.1.1: Integer promotion.

    Types with rank < int (and enums) are promoted to int; int can hold
    every value of the smaller types under LP64.
    """
    unq = t.unqualified
    if unq.kind == TypeKind.ENUM or unq.integer_rank < CType._INTEGER_RANK[TypeKind.INT]:
        return CType.int_type()
    return unq


def usual_arithmetic_conversions(a: CType, b: CType) -> CType:
    """
    Compute the common type after C's usual arithmetic conversions.

    C11 §6.3.1.8:
      1. If either is long double → long double
      2. If either is double → double
      3. If either is float → float
      4. Integer promotions on both, then:
         a. Same type → that type
         b. Same sign → higher rank
         c. Unsigned rank ≥ signed rank → unsigned type
         d. Signed type can represent all unsigned values → signed type
         e. Otherwise → unsigned version of signed type
    """
    ua = a.unqualified
    ub = b.unqualified

    if ua.kind == TypeKind.LONG_DOUBLE or ub.kind == TypeKind.LONG_DOUBLE:
        return CType.long_double_type()
    if ua.kind == TypeKind.DOUBLE or ub.kind == TypeKind.DOUBLE:
        return CType.double_type()
    if ua.kind == TypeKind.FLOAT or ub.kind == TypeKind.FLOAT:
        return CType.float_type()

    pa = integer_promote(ua)
    pb = integer_promote(ub)

    if pa.kind == pb.kind:
        return pa

    pa_signed = pa.kind not in _UNSIGNED_KINDS
    pb_signed = pb.kind not in _UNSIGNED_KINDS

    if pa_signed == pb_signed:
        return pa if pa.integer_rank >= pb.integer_rank else pb

    if not pa_signed:
        unsigned, signed_ = pa, pb
    else:
        unsigned, signed_ = pb, pa

    if unsigned.integer_rank >= signed_.integer_rank:
        return unsigned

    # long can represent every unsigned int value under LP64
    if signed_.bit_width > unsigned.bit_width:
        return signed_

    return CType.of_kind(_TO_UNSIGNED.get(signed_.kind, TypeKind.UINT))


_TO_UNSIGNED: Dict[TypeKind, TypeKind] = {
    TypeKind.SHORT: TypeKind.USHORT,
    TypeKind.INT: TypeKind.UINT,
    TypeKind.LONG: TypeKind.ULONG,
    TypeKind.LONG_LONG: TypeKind.ULONG_LONG,
}


def decay(t: CType) -> CType:
    """Array-to-pointer and function-to-pointer conversion."""
    unq = t.unqualified
    if unq.kind == TypeKind.ARRAY:
        return CType.ptr(t.element_type)
    if unq.kind == TypeKind.FUNC:
        return CType.ptr(unq)
    return t


COMPARISON_OPS = frozenset({"==", "!=", "<", ">", "<=", ">="})
LOGICAL_OPS = frozenset({"&&", "||"})
SHIFT_OPS = frozenset({"<<", ">>"})
INTEGER_ONLY_OPS = frozenset({"%", "&", "|", "^"})


def binary_result_type(op: str, lhs: Optional[CType], rhs: Optional[CType]) -> Optional[CType]:
    """
    Result type of a non-assignment binary operator.

    Unknown operand types give an unknown result.
    """
    if lhs is None or rhs is None:
        return None
    if op in COMPARISON_OPS or op in LOGICAL_OPS:
        return CType.int_type()
    if op in SHIFT_OPS:
        if lhs.is_integer and rhs.is_integer:
            return integer_promote(lhs)
        return None
    if op in INTEGER_ONLY_OPS:
        if lhs.is_integer and rhs.is_integer:
            return usual_arithmetic_conversions(lhs, rhs)
        return None
    if lhs.is_arithmetic and rhs.is_arithmetic:
        return usual_arithmetic_conversions(lhs, rhs)
    left, right = decay(lhs), decay(rhs)
    if op == "+":
        if left.is_pointer and right.is_integer:
            return left
        if left.is_integer and right.is_pointer:
            return right
    if op == "-":
        if left.is_pointer and right.is_integer:
            return left
        if left.is_pointer and right.is_pointer:
            return CType.typedef("ptrdiff_t", CType.long_type())
    return None


def unary_result_type(op: str, operand: Optional[CType]) -> Optional[CType]:
    """Result type of a unary operator (``op`` as stored on the model)."""
    if operand is None:
        return None
    if op == "!":
        return CType.int_type()
    if op in ("-", "+"):
        return integer_promote(operand) if operand.is_integer else (
            operand.unqualified if operand.is_floating else None)
    if op == "~":
        return integer_promote(operand) if operand.is_integer else None
    if op == "*":
        unq = decay(operand)
        if unq.is_pointer:
            return unq.pointee
        return None
    if op == "&":
        return CType.ptr(operand)
    # increments and decrements keep the operand type
    return operand.unqualified


def conditional_result_type(then: Optional[CType], other: Optional[CType]) -> Optional[CType]:
    if then is None or other is None:
        return None
    if then.is_arithmetic and other.is_arithmetic:
        return usual_arithmetic_conversions(then, other)
    return then


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — LITERALS  (C11 §6.4.4, §6.4.5)
# ═════════════════════════════════════════════════════════════════════════

_INT_SUFFIX_RE = re.compile(r"(?i)(u?(?:ll|l)?u?|(?:wb|uwb|wbu))$")

_DECIMAL_CANDIDATES: Dict[str, Tuple[TypeKind, ...]] = {
    "": (TypeKind.INT, TypeKind.LONG, TypeKind.LONG_LONG),
    "u": (TypeKind.UINT, TypeKind.ULONG, TypeKind.ULONG_LONG),
    "l": (TypeKind.LONG, TypeKind.LONG_LONG),
    "ul": (TypeKind.ULONG, TypeKind.ULONG_LONG),
    "ll": (TypeKind.LONG_LONG,),
    "ull": (TypeKind.ULONG_LONG,),
}

_RADIX_CANDIDATES: Dict[str, Tuple[TypeKind, ...]] = {
    "": (TypeKind.INT, TypeKind.UINT, TypeKind.LONG, TypeKind.ULONG,
         TypeKind.LONG_LONG, TypeKind.ULONG_LONG),
    "u": (TypeKind.UINT, TypeKind.ULONG, TypeKind.ULONG_LONG),
    "l": (TypeKind.LONG, TypeKind.ULONG, TypeKind.LONG_LONG, TypeKind.ULONG_LONG),
    "ul": (TypeKind.ULONG, TypeKind.ULONG_LONG),
    "ll": (TypeKind.LONG_LONG, TypeKind.ULONG_LONG),
    "ull": (TypeKind.ULONG_LONG,),
}


def _fits(value: int, kind: TypeKind) -> bool:
    width = _BIT_WIDTH[kind]
    if kind in _UNSIGNED_KINDS:
        return value < (1 << width)
    return value < (1 << (width - 1))


def is_floating_literal(text: str) -> bool:
    """Tell a floating constant from an integer constant by its spelling."""
    t = text.replace("'", "").lower()
    if t.startswith("0x"):
        return "p" in t or "." in t
    return "." in t or "e" in t


def parse_integer_literal(text: str) -> Tuple[int, CType]:
    """
    Value and type of an integer constant.

    Follows the C11 §6.4.4.1 table: the first type in the candidate list
    for the constant's radix and suffix that can represent the value.
    Constants too large for any candidate get ``unsigned long long``.
    """
    t = text.replace("'", "")
    m = _INT_SUFFIX_RE.search(t)
    suffix = m.group(1).lower() if m else ""
    digits = t[: len(t) - len(suffix)] if suffix else t
    suffix = "".join(sorted(suffix.replace("wb", ""), key="ul".index))
    lowered = digits.lower()
    if lowered.startswith("0x"):
        value, decimal = int(lowered[2:] or "0", 16), False
    elif lowered.startswith("0b"):
        value, decimal = int(lowered[2:] or "0", 2), False
    elif len(lowered) > 1 and lowered.startswith("0") and lowered.isdigit():
        try:
            value, decimal = int(lowered, 8), False
        except ValueError:
            value, decimal = int(lowered, 10), True
    else:
        value, decimal = int(lowered or "0", 10), True
    table = _DECIMAL_CANDIDATES if decimal else _RADIX_CANDIDATES
    for kind in table.get(suffix, table[""]):
        if _fits(value, kind):
            return value, CType.of_kind(kind)
    return value, CType.of_kind(TypeKind.ULONG_LONG)


def parse_floating_literal(text: str) -> Tuple[CType, bytes]:
    """
    Type and bit pattern of a floating constant.

    ``float`` constants are rounded to single precision before packing so
    that ``1.1f`` and ``1.10f`` share a pattern.  ``long double`` is
    approximated by its double value tagged with the type.
    """
    t = text.replace("'", "")
    lowered = t.lower()
    is_hex = lowered.startswith("0x")
    ctype = CType.double_type()
    body = lowered
    if body.endswith("f") and not (is_hex and "p" not in body):
        ctype, body = CType.float_type(), body[:-1]
    elif body.endswith("l"):
        ctype, body = CType.long_double_type(), body[:-1]
    if is_hex:
        value = float.fromhex(body)
    else:
        value = float(body)
    if ctype.kind == TypeKind.FLOAT:
        try:
            pattern = struct.pack("<f", value)
        except OverflowError:
            pattern = struct.pack("<f", math.copysign(math.inf, value))
    else:
        pattern = struct.pack("<d", value)
    return ctype, pattern


_SIMPLE_ESCAPES: Dict[str, int] = {
    "n": 0x0A, "t": 0x09, "r": 0x0D, "a": 0x07, "b": 0x08,
    "f": 0x0C, "v": 0x0B, "\\": 0x5C, "'": 0x27, '"': 0x22,
    "?": 0x3F, "e": 0x1B,
}


def decode_escapes(body: str) -> List[int]:
    """
    Decode the characters of a character or string literal body.

    Returns one code point per source character or escape sequence.
    """
    out: List[int] = []
    i = 0
    n = len(body)
    while i < n:
        c = body[i]
        if c != "\\" or i + 1 >= n:
            out.append(ord(c))
            i += 1
            continue
        nxt = body[i + 1]
        if nxt in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[nxt])
            i += 2
        elif nxt in "01234567":
            j = i + 1
            while j < n and j < i + 4 and body[j] in "01234567":
                j += 1
            out.append(int(body[i + 1:j], 8))
            i = j
        elif nxt == "x":
            j = i + 2
            while j < n and body[j] in "0123456789abcdefABCDEF":
                j += 1
            out.append(int(body[i + 2:j] or "0", 16))
            i = j
        elif nxt in "uU":
            width = 4 if nxt == "u" else 8
            out.append(int(body[i + 2:i + 2 + width] or "0", 16))
            i += 2 + width
        else:
            out.append(ord(nxt))
            i += 2
    return out


_CHAR_PREFIX_RE = re.compile(r"^(u8|u|U|L)?'(.*)'$", re.S)


def parse_char_literal(text: str) -> Tuple[int, CType]:
    """
    Value and type of a character constant.

    Plain character constants have type ``int``; a single plain ``char``
    is sign-extended (plain char is signed).  Multi-character constants
    are packed big-endian into an int.
    """
    m = _CHAR_PREFIX_RE.match(text)
    if m is None:
        return 0, CType.int_type()
    prefix, body = m.group(1) or "", m.group(2)
    chars = decode_escapes(body)
    if prefix == "L":
        return (chars[0] if chars else 0), CType.typedef("wchar_t", CType.int_type())
    if prefix == "u":
        return (chars[0] if chars else 0), CType.typedef("char16_t", CType.short_type(signed=False))
    if prefix == "U":
        return (chars[0] if chars else 0), CType.typedef("char32_t", CType.int_type(signed=False))
    if prefix == "u8":
        return (chars[0] if chars else 0) & 0xFF, CType.char_type(signed=False)
    if len(chars) == 1:
        value = chars[0] & 0xFF
        if value >= 0x80:
            value -= 0x100
        return value, CType.int_type()
    value = 0
    for ch in chars:
        value = ((value << 8) | (ch & 0xFF)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value, CType.int_type()


_STRING_PREFIX_RE = re.compile(r'^(u8|u|U|L)?"(.*)"$', re.S)


def parse_string_literal(text: str) -> bytes:
    """
    Bytes of one string literal token (without the terminating NUL).

    Wide and UTF-16/32 literals are encoded in their element width so
    that ``L"a"`` and ``"a"`` differ.
    """
    m = _STRING_PREFIX_RE.match(text)
    if m is None:
        return text.encode("utf-8")
    prefix, body = m.group(1) or "", m.group(2)
    out = bytearray()
    if prefix in ("L", "U"):
        out += prefix.encode("ascii")
        for ch in decode_escapes(body):
            out += (ch & 0xFFFFFFFF).to_bytes(4, "little")
        return bytes(out)
    if prefix == "u":
        out += b"u"
        for ch in decode_escapes(body):
            out += (ch & 0xFFFF).to_bytes(2, "little")
        return bytes(out)
    i = 0
    while i < len(body):
        if body[i] == "\\":
            j = i + 2
            if j <= len(body) and body[i + 1] in "01234567":
                while j < len(body) and j < i + 4 and body[j] in "01234567":
                    j += 1
            elif j <= len(body) and body[i + 1] == "x":
                while j < len(body) and body[j] in "0123456789abcdefABCDEF":
                    j += 1
            elif j <= len(body) and body[i + 1] in "uU":
                j += 4 if body[i + 1] == "u" else 8
            for ch in decode_escapes(body[i:j]):
                if ch < 0x100:
                    out.append(ch)
                else:
                    out += chr(ch).encode("utf-8")
            i = j
        else:
            out += body[i].encode("utf-8")
            i += 1
    return bytes(out)


__all__ = [
    "TypeKind",
    "Qualifier",
    "QUALIFIER_KEYWORDS",
    "RecordInfo",
    "CType",
    "STANDARD_TYPEDEFS",
    "builtin_from_keywords",
    "integer_promote",
    "usual_arithmetic_conversions",
    "decay",
    "binary_result_type",
    "unary_result_type",
    "conditional_result_type",
    "COMPARISON_OPS",
    "LOGICAL_OPS",
    "is_floating_literal",
    "parse_integer_literal",
    "parse_floating_literal",
    "decode_escapes",
    "parse_char_literal",
    "parse_string_literal",
]
