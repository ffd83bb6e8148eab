"""Tests for output validation."""

from stream_splitter.validation import compare_outputs, data_rows, validate_split


class TestCompareOutputs:
    """Tests for compare_outputs."""

    def test_exact_match(self):
        source = [("A", "1"), ("B", "2"), ("C", "3")]
        outputs = [("f1", [("A", "1"), ("C", "3")]), ("f2", [("B", "2")])]

        report = compare_outputs(source, outputs)

        assert report.ok
        assert report.same_lines == 3
        assert report.files_checked == 2

    def test_duplicate_new_and_missing(self):
        source = [("A", "1"), ("B", "2"), ("C", "3")]
        outputs = [("f1", [("A", "1"), ("A", "1"), ("Z", "9")])]

        report = compare_outputs(source, outputs)

        assert not report.ok
        assert report.same_lines == 1
        assert report.duplicates == 1
        assert report.new_lines == 1
        assert report.missing_lines == 2

    def test_repeated_source_rows_counted_as_multiset(self):
        """Test identical source rows must each appear once."""
        source = [("A", "1"), ("A", "1")]

        assert compare_outputs(source, [("f", [("A", "1"), ("A", "1")])]).ok
        assert compare_outputs(source, [("f", [("A", "1")])]).missing_lines == 1


class TestDataRows:
    def test_header_and_blank_lines_dropped(self):
        assert data_rows("h1,h2\n\na,b\r\nc,d\n") == [("a", "b"), ("c", "d")]

    def test_quoted_rows(self):
        assert data_rows('h\n"x, y"\n') == [("x, y",)]


class TestValidateSplit:
    def test_validate_against_storage(self, local_storage):
        local_storage.write("in.csv", "k,v\nA,1\nB,2\n")
        local_storage.write("out/p/A.csv", "k,v\nA,1\n")
        local_storage.write("out/p/B.csv", "k,v\nB,2\n")

        report = validate_split(local_storage, "in.csv", "out")

        assert report.ok
        assert report.files_checked == 2

    def test_validate_detects_missing_output(self, local_storage):
        local_storage.write("in.csv", "k,v\nA,1\nB,2\n")
        local_storage.write("out/p/A.csv", "k,v\nA,1\n")

        report = validate_split(local_storage, "in.csv", "out")

        assert report.missing_lines == 1
        assert report.to_dict()["ok"] is False
