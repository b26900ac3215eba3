from dataclasses import dataclass, field


INTEGER_TYPES = (
    'tinyint', 'smallint', 'mediumint', 'int', 'integer', 'bigint',
    'serial', 'bigserial', 'smallserial',
)


def is_integer_type(type_name: str) -> bool:
    base_type = type_name.lower().split('(')[0].replace(' unsigned', '').strip()
    return base_type in INTEGER_TYPES


@dataclass
class TableField:
    name: str = ''
    field_type: str = ''
    nullable: bool = True
    auto_increment: bool = False


@dataclass
class TableStructure:
    fields: list[TableField] = field(default_factory=list)
    primary_keys: list[str] = field(default_factory=list)
    table_name: str = ''

    def auto_increment_fields(self):
        return [f for f in self.fields if f.auto_increment]
