"""Tests for building row objects from column values."""

import uuid
from decimal import Decimal

import pytest

from procdata.core.exceptions import ConfigurationError, DataSetIndexError, MissingMapping
from procdata.core.materializer import RowMaterializer
from procdata.core.registry import registry
from procdata.core.type_map import DB_NULL
from procedures import AccountRow, LoadPrices, NameRow, PriceRow, StatusCode, ThreeSets


@pytest.fixture
def three_sets():
    return RowMaterializer(registry.resolve(ThreeSets))


@pytest.mark.unit
class TestRowMaterializer:
    def test_class_constructor(self, three_sets):
        row = three_sets.materialize(("x",), 0)
        assert isinstance(row, NameRow)
        assert row.name == "x"

    def test_classmethod_constructor_with_enum_coercion(self, three_sets):
        account_id = uuid.uuid4()
        row = three_sets.materialize(("y", 7, account_id, "A"), 2)
        assert isinstance(row, AccountRow)
        assert (row.label, row.count, row.account_id) == ("y", 7, account_id)
        assert row.status is StatusCode.ACTIVE

    def test_enum_member_passes_through(self, three_sets):
        row = three_sets.materialize(("y", 7, uuid.uuid4(), StatusCode.CLOSED), 2)
        assert row.status is StatusCode.CLOSED

    def test_invalid_enum_value(self, three_sets):
        with pytest.raises(ConfigurationError, match="not a valid StatusCode"):
            three_sets.materialize(("y", 7, uuid.uuid4(), "Z"), 2)

    def test_db_null_column_becomes_none(self, three_sets):
        row = three_sets.materialize((DB_NULL,), 0)
        assert row.name is None

    def test_arity_mismatch(self, three_sets):
        with pytest.raises(ConfigurationError, match="takes 2 columns"):
            three_sets.materialize(("a",), 1)

    def test_index_out_of_range(self, three_sets):
        with pytest.raises(DataSetIndexError):
            three_sets.materialize(("x",), 3)

    def test_dataclass_rows(self):
        materializer = RowMaterializer(registry.resolve(LoadPrices))
        row = materializer.materialize(("sku-1", Decimal("9.99")), 0)
        assert row == PriceRow("sku-1", Decimal("9.99"))

    def test_missing_mapping_is_lazy(self):
        materializer = RowMaterializer(registry.resolve(LoadPrices))
        with pytest.raises(MissingMapping, match="UnmappedRow"):
            materializer.materialize(("v",), 1)
