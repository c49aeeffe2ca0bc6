"""
Unit tests for cli module.
"""

import json

from pathlib import Path

from cube_core.cli import EXIT_NO_CAPABLE_CUBE, main, parse_args

ROOT = Path(__file__).parent.parent


class TestParseArgs:
    """Tests for argument parsing."""

    def test_match_defaults(self):
        """Test match subcommand defaults."""
        args = parse_args(["match", "--cube_meta", "c.json", "--digest", "d.json"])
        assert args.command == "match"
        assert args.allow_weak == 0
        assert args.out_dir is None
        assert args.cube_meta == Path("c.json")

    def test_cardinality_defaults(self):
        """Test cardinality subcommand defaults."""
        args = parse_args([
            "cardinality", "--schema_meta", "s.json", "--table", "sales",
            "--data_dir", "data", "--out_dir", "out",
        ])
        assert args.delimiter == ","
        assert args.precision == 14
        assert args.workers == 4
        assert args.max_rows is None
        assert not args.show_samples


class TestMatchCommand:
    """Tests for the match subcommand."""

    def test_capable_cube_found(self, tmp_path: Path, capsys):
        """Test a matching digest exits 0 and writes a report."""
        code = main([
            "match",
            "--cube_meta", str(ROOT / "cube_meta.json"),
            "--digest", str(ROOT / "examples" / "digest_top_seller.json"),
            "--schema_meta", str(ROOT / "schema_meta.json"),
            "--out_dir", str(tmp_path),
        ])
        assert code == 0
        out = capsys.readouterr().out
        assert "top_seller_cube: capable (top-n)" in out
        assert "Selected cube: top_seller_cube" in out
        assert "WARNING" not in out

        report = json.loads((tmp_path / "match_report.json").read_text(encoding="utf-8"))
        assert report["selected_cube"] == "top_seller_cube"
        assert report["cube_count"] == 4
        assert report["capable_count"] == 2
        assert report["meta"]["allow_weak"] is False

    def test_weak_match_flag(self, tmp_path: Path, capsys):
        """Test --allow_weak 1 accepts a missing COUNT."""
        digest = tmp_path / "digest.json"
        digest.write_text(json.dumps({
            "dimensions": ["sales.region"],
            "aggregations": ["SUM(sales.quantity)", "COUNT(sales.order_id)"],
            "joins": [{"type": "left", "on": "sales.part_dt = date_dim.cal_dt"}],
        }))
        args = ["match", "--cube_meta", str(ROOT / "cube_meta.json"), "--digest", str(digest)]

        assert main(args) == EXIT_NO_CAPABLE_CUBE
        capsys.readouterr()

        digest.write_text(json.dumps({
            "dimensions": ["date_dim.week"],
            "aggregations": ["SUM(sales.quantity)", "COUNT(sales.order_id)"],
            "joins": [{"type": "left", "on": "sales.part_dt = date_dim.cal_dt"}],
        }))
        assert main(args) == EXIT_NO_CAPABLE_CUBE
        assert main(args + ["--allow_weak", "1"]) == 0
        assert "calendar_cube: capable (weak)" in capsys.readouterr().out

    def test_no_capable_cube(self, tmp_path: Path, capsys):
        """Test an unanswerable digest exits 2."""
        digest = tmp_path / "digest.json"
        digest.write_text(json.dumps({"aggregations": ["AVG(sales.price)"]}))
        code = main([
            "match",
            "--cube_meta", str(ROOT / "cube_meta.json"),
            "--digest", str(digest),
            "--out_dir", str(tmp_path / "out"),
        ])
        assert code == EXIT_NO_CAPABLE_CUBE
        assert "No capable cube found" in capsys.readouterr().out
        report = json.loads((tmp_path / "out" / "match_report.json").read_text(encoding="utf-8"))
        assert report["selected_cube"] is None

    def test_missing_file(self, tmp_path: Path, capsys):
        """Test a missing input file exits 1."""
        code = main([
            "match",
            "--cube_meta", str(tmp_path / "missing.json"),
            "--digest", str(ROOT / "examples" / "digest_top_seller.json"),
        ])
        assert code == 1
        assert "does not exist" in capsys.readouterr().err

    def test_invalid_digest(self, tmp_path: Path, capsys):
        """Test an unparsable expression exits 1."""
        digest = tmp_path / "digest.json"
        digest.write_text(json.dumps({"aggregations": ["MY_AGG(sales.price)"]}))
        code = main([
            "match",
            "--cube_meta", str(ROOT / "cube_meta.json"),
            "--digest", str(digest),
        ])
        assert code == 1
        assert capsys.readouterr().err.startswith("Error:")


class TestCardinalityCommand:
    """Tests for the cardinality subcommand."""

    def make_data_dir(self, tmp_path: Path) -> Path:
        data_dir = tmp_path / "seller"
        data_dir.mkdir()
        (data_dir / "part-0.csv").write_text("1,alice,DE\n2,bob,DE\n3,carol,\\N\n")
        (data_dir / "part-1.csv").write_text("3,carol,FR\n4,dave,FR\n")
        return data_dir

    def test_cardinality_report(self, tmp_path: Path, capsys):
        """Test estimates are printed and written."""
        data_dir = self.make_data_dir(tmp_path)
        out_dir = tmp_path / "out"
        code = main([
            "cardinality",
            "--schema_meta", str(ROOT / "schema_meta.json"),
            "--table", "seller",
            "--data_dir", str(data_dir),
            "--out_dir", str(out_dir),
            "--workers", "2",
        ])
        assert code == 0
        out = capsys.readouterr().out
        assert "Loaded 2 partitions of table seller" in out
        assert "seller_id: ~4" in out

        report = json.loads((out_dir / "seller_cardinality.json").read_text(encoding="utf-8"))
        by_name = {c["name"]: c["cardinality"] for c in report["columns"]}
        assert by_name == {"seller_id": 4, "seller_name": 4, "seller_country": 3}
        assert report["row_count"] == 5
        assert report["meta"]["precision"] == 14

    def test_show_samples(self, tmp_path: Path, capsys):
        """Test sample rows are printed."""
        data_dir = self.make_data_dir(tmp_path)
        main([
            "cardinality",
            "--schema_meta", str(ROOT / "schema_meta.json"),
            "--table", "seller",
            "--data_dir", str(data_dir),
            "--out_dir", str(tmp_path / "out"),
            "--workers", "1",
            "--show_samples",
        ])
        out = capsys.readouterr().out
        assert "Get row 0 column 'seller_id' value: 1" in out
        assert "Get row 2 column 'seller_country' value: NULL" in out

    def test_unknown_table(self, tmp_path: Path, capsys):
        """Test an unknown table exits 1."""
        data_dir = self.make_data_dir(tmp_path)
        code = main([
            "cardinality",
            "--schema_meta", str(ROOT / "schema_meta.json"),
            "--table", "buyers",
            "--data_dir", str(data_dir),
            "--out_dir", str(tmp_path / "out"),
        ])
        assert code == 1
        assert "Error:" in capsys.readouterr().err

    def test_missing_data_dir(self, tmp_path: Path, capsys):
        """Test a missing data directory exits 1."""
        code = main([
            "cardinality",
            "--schema_meta", str(ROOT / "schema_meta.json"),
            "--table", "seller",
            "--data_dir", str(tmp_path / "nope"),
            "--out_dir", str(tmp_path / "out"),
        ])
        assert code == 1
        assert "data_dir does not exist" in capsys.readouterr().err

    def test_quoted_multi_line_field(self, tmp_path: Path):
        """Test a tab-delimited quoted field spanning lines is one row."""
        data_dir = tmp_path / "seller"
        data_dir.mkdir()
        (data_dir / "part-0.tsv").write_bytes(b'1\t"alice\nsmith"\tDE\n2\tbob\tFR\n')
        out_dir = tmp_path / "out"
        code = main([
            "cardinality",
            "--schema_meta", str(ROOT / "schema_meta.json"),
            "--table", "seller",
            "--data_dir", str(data_dir),
            "--out_dir", str(out_dir),
            "--delimiter", "\t",
        ])
        assert code == 0
        report = json.loads((out_dir / "seller_cardinality.json").read_text(encoding="utf-8"))
        assert report["row_count"] == 2
        assert report["short_row_count"] == 0
        by_name = {c["name"]: c["cardinality"] for c in report["columns"]}
        assert by_name == {"seller_id": 2, "seller_name": 2, "seller_country": 2}
