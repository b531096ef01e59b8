"""
SQL_MODE 解析（drainer.core.config.sql_mode）

将下游 MySQL/TiDB 的 sql-mode 字符串（逗号分隔）解析为位掩码。
名称大小写不敏感，空项忽略；组合模式（ANSI、TRADITIONAL 等）展开为其成员位。
"""

from __future__ import annotations

from enum import IntFlag
from typing import Dict


class SQLMode(IntFlag):
    NONE = 0
    REAL_AS_FLOAT = 1 << 0
    PIPES_AS_CONCAT = 1 << 1
    ANSI_QUOTES = 1 << 2
    IGNORE_SPACE = 1 << 3
    NOT_USED = 1 << 4
    ONLY_FULL_GROUP_BY = 1 << 5
    NO_UNSIGNED_SUBTRACTION = 1 << 6
    NO_DIR_IN_CREATE = 1 << 7
    POSTGRESQL = 1 << 8
    ORACLE = 1 << 9
    MSSQL = 1 << 10
    DB2 = 1 << 11
    MAXDB = 1 << 12
    NO_KEY_OPTIONS = 1 << 13
    NO_TABLE_OPTIONS = 1 << 14
    NO_FIELD_OPTIONS = 1 << 15
    MYSQL323 = 1 << 16
    MYSQL40 = 1 << 17
    ANSI = 1 << 18
    NO_AUTO_VALUE_ON_ZERO = 1 << 19
    NO_BACKSLASH_ESCAPES = 1 << 20
    STRICT_TRANS_TABLES = 1 << 21
    STRICT_ALL_TABLES = 1 << 22
    NO_ZERO_IN_DATE = 1 << 23
    NO_ZERO_DATE = 1 << 24
    INVALID_DATES = 1 << 25
    ERROR_FOR_DIVISION_BY_ZERO = 1 << 26
    TRADITIONAL = 1 << 27
    NO_AUTO_CREATE_USER = 1 << 28
    HIGH_NOT_PRECEDENCE = 1 << 29
    NO_ENGINE_SUBSTITUTION = 1 << 30
    PAD_CHAR_TO_FULL_LENGTH = 1 << 31
    ALLOW_INVALID_DATES = 1 << 32


# 组合模式：名称 → 展开后的位
_COMBINED_MODES: Dict[str, SQLMode] = {
    "ANSI": SQLMode.REAL_AS_FLOAT
    | SQLMode.PIPES_AS_CONCAT
    | SQLMode.ANSI_QUOTES
    | SQLMode.IGNORE_SPACE
    | SQLMode.ONLY_FULL_GROUP_BY
    | SQLMode.ANSI,
    "TRADITIONAL": SQLMode.STRICT_TRANS_TABLES
    | SQLMode.STRICT_ALL_TABLES
    | SQLMode.NO_ZERO_IN_DATE
    | SQLMode.NO_ZERO_DATE
    | SQLMode.ERROR_FOR_DIVISION_BY_ZERO
    | SQLMode.NO_AUTO_CREATE_USER
    | SQLMode.NO_ENGINE_SUBSTITUTION
    | SQLMode.TRADITIONAL,
    "DB2": SQLMode.PIPES_AS_CONCAT
    | SQLMode.ANSI_QUOTES
    | SQLMode.IGNORE_SPACE
    | SQLMode.NO_KEY_OPTIONS
    | SQLMode.NO_TABLE_OPTIONS
    | SQLMode.NO_FIELD_OPTIONS
    | SQLMode.DB2,
    "MSSQL": SQLMode.PIPES_AS_CONCAT
    | SQLMode.ANSI_QUOTES
    | SQLMode.IGNORE_SPACE
    | SQLMode.NO_KEY_OPTIONS
    | SQLMode.NO_TABLE_OPTIONS
    | SQLMode.NO_FIELD_OPTIONS
    | SQLMode.MSSQL,
    "ORACLE": SQLMode.PIPES_AS_CONCAT
    | SQLMode.ANSI_QUOTES
    | SQLMode.IGNORE_SPACE
    | SQLMode.NO_KEY_OPTIONS
    | SQLMode.NO_TABLE_OPTIONS
    | SQLMode.NO_FIELD_OPTIONS
    | SQLMode.NO_AUTO_CREATE_USER
    | SQLMode.ORACLE,
    "POSTGRESQL": SQLMode.PIPES_AS_CONCAT
    | SQLMode.ANSI_QUOTES
    | SQLMode.IGNORE_SPACE
    | SQLMode.NO_KEY_OPTIONS
    | SQLMode.NO_TABLE_OPTIONS
    | SQLMode.NO_FIELD_OPTIONS
    | SQLMode.POSTGRESQL,
    "MAXDB": SQLMode.PIPES_AS_CONCAT
    | SQLMode.ANSI_QUOTES
    | SQLMode.IGNORE_SPACE
    | SQLMode.NO_KEY_OPTIONS
    | SQLMode.NO_TABLE_OPTIONS
    | SQLMode.NO_FIELD_OPTIONS
    | SQLMode.NO_AUTO_CREATE_USER
    | SQLMode.MAXDB,
    "MYSQL323": SQLMode.MYSQL323 | SQLMode.HIGH_NOT_PRECEDENCE,
    "MYSQL40": SQLMode.MYSQL40 | SQLMode.HIGH_NOT_PRECEDENCE,
}


class InvalidSQLModeError(ValueError):
    """无法识别的 SQL_MODE 名称"""

    def __init__(self, mode: str):
        super().__init__(f"Variable 'sql_mode' can't be set to the value of '{mode}'")
        self.mode = mode


def parse_sql_mode(value: str) -> SQLMode:
    """
    解析 sql-mode 字符串。

    参数：
        value: 逗号分隔的模式名，如 "STRICT_TRANS_TABLES,NO_ZERO_DATE"

    返回：
        SQLMode: 按位或后的模式

    异常：
        InvalidSQLModeError: 存在无法识别的模式名
    """
    mode = SQLMode.NONE
    for item in value.split(","):
        name = item.strip().upper()
        if not name:
            continue
        if name in _COMBINED_MODES:
            mode |= _COMBINED_MODES[name]
            continue
        try:
            mode |= SQLMode[name]
        except KeyError:
            raise InvalidSQLModeError(name) from None
    return mode
