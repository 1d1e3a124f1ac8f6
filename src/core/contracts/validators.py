"""
JSON Schema Contract Validators

Валидация сырых on-chain записей ребалансировки (как их возвращает RPC/ABI
decoder, bigint как десятичная строка или int) против формальных
JSON Schema контрактов до конверсии в каноническую модель.

Схемы:
- rebalance_v4.json: параллельные массивы, плоские timestamps
- rebalance_v5.json: массив параметров токенов, вложенные timestamps
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema
from jsonschema import Draft202012Validator, ValidationError

from src.core.domain.rebalance import FolioVersion

# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы поставляются вместе с пакетом в contracts/schema/.
    """

    def __init__(self, schema_dir: Optional[Path] = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'rebalance_v5')

        Returns:
            Загруженная схема как dict

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если файл не является валидной JSON Schema
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        # meta-validation
        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}") from e

        self._schemas[schema_name] = schema
        return schema


# Глобальный экземпляр загрузчика
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """
    Базовый класс для валидаторов контрактов.

    Инкапсулирует логику валидации данных против JSON Schema.
    """

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Валидация данных против схемы.

        Raises:
            ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        """Проверка валидности данных без exception."""
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]):
        """
        Итератор по всем ошибкам валидации.

        Yields:
            ValidationError объекты для каждой найденной ошибки
        """
        return self.validator.iter_errors(data)


class RebalanceV4Validator(ContractValidator):
    """Валидатор записи ребалансировки в layout V4."""

    def __init__(self):
        super().__init__("rebalance_v4")


class RebalanceV5Validator(ContractValidator):
    """Валидатор записи ребалансировки в layout V5."""

    def __init__(self):
        super().__init__("rebalance_v5")


_VALIDATORS = {
    FolioVersion.V4: RebalanceV4Validator,
    FolioVersion.V5: RebalanceV5Validator,
}


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validator_for_version(version: FolioVersion) -> ContractValidator:
    """
    Валидатор для версии layout.

    Raises:
        ValueError: Если версия не поддерживается
    """
    return _VALIDATORS[FolioVersion(version)]()


def validate_rebalance_record(data: Dict[str, Any], version: FolioVersion) -> None:
    """
    Валидация сырой записи ребалансировки.

    Args:
        data: Запись в layout версии version
        version: FolioVersion.V4 или FolioVersion.V5

    Raises:
        ValidationError: Если данные не соответствуют схеме
    """
    validator_for_version(version).validate(data)

