"""Tests for Clover coverage extraction."""

import pytest

from sismo_mcp.build.coverage import extract_coverage

CLOVER_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<coverage generated="1714560000">
  <project timestamp="1714560000">
    <file name="/src/Foo.php">
      <metrics loc="10" statements="5" coveredstatements="5"/>
    </file>
    <metrics {attributes}/>
  </project>
</coverage>
"""


def write_report(tmp_path, **metrics):
    attributes = " ".join(f'{name}="{value}"' for name, value in metrics.items())
    path = tmp_path / "clover.xml"
    path.write_text(CLOVER_TEMPLATE.format(attributes=attributes))
    return str(path)


class TestExtractCoverage:
    """Tests for extract_coverage."""

    def test_computes_percentage(self, tmp_path):
        """Test (covered totals) / (totals) * 100, truncated."""
        path = write_report(
            tmp_path,
            coveredstatements=80,
            statements=100,
            coveredconditionals=0,
            conditionals=0,
            coveredmethods=10,
            methods=20,
        )

        assert extract_coverage(path) == 75

    def test_truncates_instead_of_rounding(self, tmp_path):
        """Test 2/3 gives 66, not 67."""
        path = write_report(
            tmp_path,
            coveredstatements=2,
            statements=3,
            coveredconditionals=0,
            conditionals=0,
            coveredmethods=0,
            methods=0,
        )

        assert extract_coverage(path) == 66

    def test_full_coverage(self, tmp_path):
        path = write_report(
            tmp_path,
            coveredstatements=10,
            statements=10,
            coveredconditionals=4,
            conditionals=4,
            coveredmethods=2,
            methods=2,
        )

        assert extract_coverage(path) == 100

    def test_not_configured(self):
        """Test no path gives 0."""
        assert extract_coverage(None) == 0
        assert extract_coverage("") == 0

    def test_missing_file(self, tmp_path):
        """Test a missing report gives 0."""
        assert extract_coverage(str(tmp_path / "nope.xml")) == 0

    def test_malformed_xml(self, tmp_path):
        """Test a broken document gives 0 without raising."""
        path = tmp_path / "clover.xml"
        path.write_text("<coverage><project><metrics")

        assert extract_coverage(str(path)) == 0

    def test_missing_metrics_node(self, tmp_path):
        """Test a report without project/metrics gives 0."""
        path = tmp_path / "clover.xml"
        path.write_text("<coverage><project/></coverage>")

        assert extract_coverage(str(path)) == 0

    def test_zero_totals(self, tmp_path):
        """Test an empty project gives 0 instead of dividing by zero."""
        path = write_report(
            tmp_path,
            coveredstatements=0,
            statements=0,
            coveredconditionals=0,
            conditionals=0,
            coveredmethods=0,
            methods=0,
        )

        assert extract_coverage(path) == 0

    def test_non_numeric_metrics(self, tmp_path):
        """Test garbage attribute values give 0."""
        path = write_report(tmp_path, coveredstatements="lots", statements=10)

        assert extract_coverage(path) == 0

    def test_missing_attributes_count_as_zero(self, tmp_path):
        """Test absent attributes are treated as 0."""
        path = write_report(tmp_path, coveredstatements=1, statements=4)

        assert extract_coverage(path) == 25

    def test_directory_instead_of_file(self, tmp_path):
        """Test a directory at the report path gives 0."""
        assert extract_coverage(str(tmp_path)) == 0

    @pytest.mark.parametrize(
        "metrics",
        [
            {"coveredstatements": "nan", "statements": 10},
            {"coveredstatements": "inf", "statements": 10},
            {"coveredstatements": 1, "statements": "inf"},
            {"coveredstatements": "-inf", "statements": "-inf"},
        ],
    )
    def test_non_finite_metrics(self, tmp_path, metrics):
        """Test nan and infinite attribute values give 0."""
        path = write_report(tmp_path, **metrics)

        assert extract_coverage(path) == 0
