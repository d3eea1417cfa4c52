"""
Converts :class:`.domain.Account` to and from flat Redis hash fields.

A Redis hash is a mapping of field names to strings. The field names below
match records already written by the deployed signup service, so they must
not be renamed. Both directions are driven by :data:`FIELDS`.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, \
    Optional, Tuple, Union
from datetime import datetime

import dateutil.parser

from .domain import Account
from .exceptions import CorruptRecord

Fields = Union[Mapping[str, str], Iterable[Tuple[str, str]]]

STR = 'str'
BOOL = 'bool'
INT = 'int'
DATETIME = 'datetime'

_TRUE = {'1', 'true'}
_FALSE = {'0', 'false'}


class Field(NamedTuple):
    """Maps a hash field to an :class:`.Account` attribute."""

    name: str
    attribute: str
    type_tag: str


FIELDS: List[Field] = [
    Field('Id', 'user_id', STR),
    Field('UserName', 'username', STR),
    Field('NormalizedUserName', 'normalized_username', STR),
    Field('Email', 'email', STR),
    Field('NormalizedEmail', 'normalized_email', STR),
    Field('EmailConfirmed', 'email_confirmed', BOOL),
    Field('PasswordHash', 'password_hash', STR),
    Field('SecurityStamp', 'security_stamp', STR),
    Field('ConcurrencyStamp', 'concurrency_stamp', STR),
    Field('PhoneNumber', 'phone_number', STR),
    Field('PhoneNumberConfirmed', 'phone_number_confirmed', BOOL),
    Field('TwoFactorEnabled', 'two_factor_enabled', BOOL),
    Field('LockoutEnd', 'lockout_end', DATETIME),
    Field('LockoutEnabled', 'lockout_enabled', BOOL),
    Field('AccessFailedCount', 'access_failed_count', INT),
    Field('FirstName', 'first_name', STR),
    Field('LastName', 'last_name', STR),
    Field('CreatedAt', 'created_at', DATETIME),
]
"""Single source of truth for the record layout, in write order."""

_BY_NAME: Dict[str, Field] = {field.name: field for field in FIELDS}


def _format_bool(value: Any) -> str:
    return '1' if value else '0'


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE or not lowered:
        return False
    raise ValueError(f'Not a boolean: {value!r}')


def _format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ''
    return value.isoformat()


def _parse_datetime(value: str) -> Optional[datetime]:
    if not value:
        return None
    return dateutil.parser.parse(value)


def _parse_int(value: str) -> int:
    return int(value) if value else 0


_FORMATTERS: Dict[str, Callable[[Any], str]] = {
    STR: lambda value: value or '',
    BOOL: _format_bool,
    INT: lambda value: str(int(value or 0)),
    DATETIME: _format_datetime,
}

_PARSERS: Dict[str, Callable[[str], Any]] = {
    STR: lambda value: value,
    BOOL: _parse_bool,
    INT: _parse_int,
    DATETIME: _parse_datetime,
}


def encode(account: Account) -> List[Tuple[str, str]]:
    """
    Serialize an account as an ordered sequence of hash fields.

    Every field is emitted, including empty strings for unset values, so
    that :func:`decode` never has to guess whether a field was written.

    Parameters
    ----------
    account : :class:`.Account`

    Returns
    -------
    list
        ``(field name, value)`` tuples, in the order of :data:`FIELDS`.

    """
    return [
        (field.name, _FORMATTERS[field.type_tag](getattr(account, field.attribute)))
        for field in FIELDS
    ]


def _text(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return value


def _items(fields: Fields) -> Iterable[Tuple[str, str]]:
    items = fields.items() if isinstance(fields, Mapping) else fields
    for name, value in items:
        yield _text(name), _text(value)


def _parse(field: Field, value: str) -> Any:
    try:
        return _PARSERS[field.type_tag](value)
    except (ValueError, OverflowError) as e:
        raise CorruptRecord(f'Bad value for {field.name}: {value!r}') from e


def decode_field(fields: Fields, name: str) -> Any:
    """
    Parse a single field out of a stored record.

    Lets callers get at one value of a record whose other fields may not
    decode. A field that is absent parses as if it were empty.

    Raises
    ------
    :class:`.CorruptRecord`
        Raised if this field holds a value that cannot be parsed.

    """
    field = _BY_NAME[name]
    return _parse(field, dict(_items(fields)).get(name, ''))


def decode(fields: Fields) -> Optional[Account]:
    """
    Deserialize hash fields into an account.

    Parameters
    ----------
    fields : mapping or iterable of ``(name, value)`` tuples
        As returned by ``HGETALL``. Names and values may be ``bytes``.

    Returns
    -------
    :class:`.Account` or None
        ``None`` if ``fields`` is empty, i.e. the record does not exist.

    Raises
    ------
    :class:`.CorruptRecord`
        Raised if a typed field holds a value that cannot be parsed.

    """
    data: Dict[str, Any] = {}
    for name, value in _items(fields):
        field = _BY_NAME.get(name)
        if field is None:   # Written by something else; not ours to keep.
            continue
        data[field.attribute] = _parse(field, value)
    if not data:
        return None
    return Account(**data)
