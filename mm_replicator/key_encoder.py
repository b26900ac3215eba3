"""
Canonical primary key strings of replicated rows.

A key is encoded as ``name|value`` pairs in the configured column order, all
joined by ``|``: ``first_id|1|second_id|2``. Values are not escaped, so a
key value containing ``|`` makes the encoding ambiguous. Change log consumers
rely on this exact format.
"""

KEY_SEPARATOR = '|'


def encode_key(names, values) -> str:
    names = list(names)
    values = list(values)
    if len(names) != len(values):
        raise ValueError(f'got {len(names)} key columns but {len(values)} values')
    if not names:
        raise ValueError('at least one key column is required')
    parts = []
    for name, value in zip(names, values):
        parts.append(str(name))
        parts.append(str(value))
    return KEY_SEPARATOR.join(parts)


def encode_row_key(names, row: dict) -> str:
    return encode_key(names, [row[name] for name in names])


def decode_key(key: str) -> dict:
    parts = key.split(KEY_SEPARATOR)
    if len(parts) % 2:
        raise ValueError(f'malformed change key {key!r}')
    return dict(zip(parts[0::2], parts[1::2]))


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def key_parts(names, row_reference: str, quote_identifier) -> list[str]:
    """SQL fragments which, concatenated, evaluate to encode_key of a trigger row.

    row_reference is the trigger's row alias (NEW / OLD), quote_identifier the
    engine's identifier quoting function.
    """
    parts = []
    for i, name in enumerate(names):
        prefix = name + KEY_SEPARATOR
        if i > 0:
            prefix = KEY_SEPARATOR + prefix
        parts.append(quote_literal(prefix))
        parts.append(f'{row_reference}.{quote_identifier(name)}')
    return parts
