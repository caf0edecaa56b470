import csv
import io
import sqlite3
import unittest

from nasr_extract import (
    ColumnDef,
    DDLSynthesizer,
    ForeignKeyConstraint,
    MetadataParseError,
    MetadataParser,
    TableSchema,
    UniqueIndex,
    coerce_value,
    decode_stream,
    load_catalog,
    normalize_line_endings,
    table_name_for_stream,
)

HEADER = ("CSV File", "Column Name", "Max Length", "Data Type", "NULLABLE")


def structure(*records, header=HEADER, line_end="\r\n") -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator=line_end)
    writer.writerow(header)
    for record in records:
        writer.writerow(record)
    return buf.getvalue().encode("utf-8")


class TestMetadataParser(unittest.TestCase):
    def parse(self, data: bytes, name: str = "APT_CSV_DATA_STRUCTURE.csv"):
        return MetadataParser(sentinel_nulls={}).parse({name: data})

    def test_type_mapping(self):
        tables = self.parse(
            structure(
                ("APT_BASE", "ARPT_ID", "4", "VARCHAR", "No"),
                ("APT_BASE", "LAT_DECIMAL", "10", "NUMBER", "No"),
                ("APT_BASE", "EFF_DATE", "10", "DATE", "No"),
            )
        )
        types = [c.data_type for c in tables["APT_BASE"].columns]
        self.assertEqual(types, ["TEXT", "REAL", "DATE"])

    def test_nullable_token_is_exact(self):
        tables = self.parse(
            structure(
                ("T", "A", "1", "VARCHAR", "Yes"),
                ("T", "B", "1", "VARCHAR", "No"),
                ("T", "C", "1", "VARCHAR", "yes"),
                ("T", "D", "1", "VARCHAR", "YES"),
                ("T", "E", "1", "VARCHAR", " Yes "),
            )
        )
        self.assertEqual([c.nullable for c in tables["T"].columns], [True, False, False, False, True])

    def test_column_names_and_order(self):
        tables = self.parse(
            structure(
                ("APT_RWY", "SITE NO", "9", "VARCHAR", "No"),
                ("APT_BASE", "SITE NO", "9", "VARCHAR", "No"),
                ("APT_RWY", "RWY ID", "7", "VARCHAR", "No"),
                ("APT_RWY", "RWY_LEN", "5", "NUMBER", "Yes"),
            )
        )
        self.assertEqual(tables["APT_RWY"].column_names(), ["SITE_NO", "RWY_ID", "RWY_LEN"])
        self.assertEqual(tables["APT_BASE"].column_names(), ["SITE_NO"])

    def test_bom_and_bare_carriage_returns(self):
        data = b"\xef\xbb\xbf" + structure(
            ("FSS_BASE", "FSS_ID", "4", "VARCHAR", "No"),
            ("FSS_BASE", "NAME", "30", "VARCHAR", "Yes"),
            line_end="\r",
        )
        tables = self.parse(data, name="FSS_CSV_DATA_STRUCTURE.csv")
        self.assertEqual(tables["FSS_BASE"].column_names(), ["FSS_ID", "NAME"])

    def test_short_and_blank_records_skipped(self):
        data = structure(
            ("T", "A", "1", "VARCHAR", "No"),
            ("T", "B", "1"),
            (),
            ("T", "C", "1", "NUMBER", "Yes"),
        )
        tables = self.parse(data)
        self.assertEqual(tables["T"].column_names(), ["A", "C"])

    def test_empty_stream_raises_with_stream_name(self):
        with self.assertRaises(MetadataParseError) as ctx:
            self.parse(b"", name="NAV_CSV_DATA_STRUCTURE.csv")
        self.assertIn("NAV_CSV_DATA_STRUCTURE.csv", str(ctx.exception))

    def test_unsplittable_record_raises(self):
        data = structure(("T", "A", "1", "VARCHAR", "No")) + b'T,"B"x,1,VARCHAR,No\r\n'
        with self.assertRaises(MetadataParseError) as ctx:
            self.parse(data, name="BAD_CSV_DATA_STRUCTURE.csv")
        self.assertEqual(ctx.exception.stream, "BAD_CSV_DATA_STRUCTURE.csv")

    def test_sentinel_override_forces_nullable(self):
        parser = MetadataParser(sentinel_nulls={("DP_BASE", "DP_COMPUTER_CODE"): "NOT ASSIGNED"})
        tables = parser.parse(
            {
                "DP_CSV_DATA_STRUCTURE.csv": structure(
                    ("DP_BASE", "DP_COMPUTER_CODE", "20", "VARCHAR", "No"),
                    ("DP_BASE", "DP_NAME", "20", "VARCHAR", "No"),
                )
            }
        )
        nullable = {c.name: c.nullable for c in tables["DP_BASE"].columns}
        self.assertEqual(nullable, {"DP_COMPUTER_CODE": True, "DP_NAME": False})

    def test_normalize_line_endings_keeps_crlf(self):
        self.assertEqual(normalize_line_endings(b"a\rb\r\nc\n\r"), b"a\nb\r\nc\n\n")


class TestCoerceValue(unittest.TestCase):
    SENTINELS = {("DP_BASE", "DP_COMPUTER_CODE"): "NOT ASSIGNED"}

    def test_cases(self):
        cases = [
            ("empty nullable", "", ColumnDef("X", "TEXT", True), "TEST", None),
            ("empty non-nullable", "", ColumnDef("X", "TEXT", False), "TEST", ""),
            ("real numeric", "123.45", ColumnDef("X", "REAL", False), "TEST", 123.45),
            ("real exponent", "-1.5e2", ColumnDef("X", "REAL", False), "TEST", -150.0),
            ("real leading dot", ".5", ColumnDef("X", "REAL", False), "TEST", 0.5),
            ("real non-numeric", "abc", ColumnDef("X", "REAL", False), "TEST", "abc"),
            ("real nan stays text", "nan", ColumnDef("X", "REAL", False), "TEST", "nan"),
            ("real overflow stays text", "1e999", ColumnDef("X", "REAL", False), "TEST", "1e999"),
            ("real negative overflow stays text", "-1e400", ColumnDef("X", "REAL", False), "TEST", "-1e400"),
            ("real large but finite", "1e308", ColumnDef("X", "REAL", False), "TEST", 1e308),
            ("real padded stays text", " 12", ColumnDef("X", "REAL", False), "TEST", " 12"),
            ("text numeric stays text", "123", ColumnDef("X", "TEXT", False), "TEST", "123"),
            ("real empty nullable", "", ColumnDef("X", "REAL", True), "TEST", None),
            ("real empty non-nullable", "", ColumnDef("X", "REAL", False), "TEST", ""),
            ("sentinel", "NOT ASSIGNED", ColumnDef("DP_COMPUTER_CODE", "TEXT", False), "DP_BASE", None),
            ("sentinel other column", "NOT ASSIGNED", ColumnDef("OTHER", "TEXT", False), "DP_BASE", "NOT ASSIGNED"),
            ("sentinel other table", "NOT ASSIGNED", ColumnDef("DP_COMPUTER_CODE", "TEXT", False), "DP_APT", "NOT ASSIGNED"),
        ]
        for name, raw, col, table, want in cases:
            with self.subTest(name):
                got = coerce_value(raw, col, table, self.SENTINELS)
                self.assertEqual(got, want)
                self.assertIs(type(got), type(want))

    def test_default_sentinels_cover_dp_computer_code(self):
        col = ColumnDef("DP_COMPUTER_CODE", "TEXT", False)
        self.assertIsNone(coerce_value("NOT ASSIGNED", col, "DP_BASE"))


def base_and_child():
    return {
        "TEST_BASE": TableSchema(
            "TEST_BASE", [ColumnDef("ID", "TEXT", False), ColumnDef("VALUE", "REAL", True)]
        ),
        "TEST_CHILD": TableSchema(
            "TEST_CHILD", [ColumnDef("ID", "TEXT", False), ColumnDef("BASE_ID", "TEXT", False)]
        ),
    }


class TestDDLSynthesizer(unittest.TestCase):
    def setUp(self):
        self.tables = base_and_child()
        self.fks = [ForeignKeyConstraint("TEST_CHILD", ("BASE_ID",), "TEST_BASE", ("ID",))]

    def test_statement_counts(self):
        create_tables, indexes = DDLSynthesizer(self.tables, self.fks).synthesize()
        self.assertEqual(len(create_tables), 2)
        self.assertEqual(len(indexes), 1)
        self.assertEqual(indexes[0], UniqueIndex("TEST_BASE", ("ID",)))

    def test_table_statement_text(self):
        create_tables, _ = DDLSynthesizer(self.tables, self.fks).synthesize()
        self.assertEqual(
            create_tables[0],
            'CREATE TABLE "TEST_BASE" (\n  "ID" TEXT NOT NULL,\n  "VALUE" REAL\n);',
        )
        self.assertEqual(
            create_tables[1],
            'CREATE TABLE "TEST_CHILD" (\n'
            '  "ID" TEXT NOT NULL,\n'
            '  "BASE_ID" TEXT NOT NULL,\n'
            '  FOREIGN KEY ("BASE_ID") REFERENCES "TEST_BASE" ("ID")\n'
            ');',
        )

    def test_index_statement_and_name(self):
        index = UniqueIndex("NAV_BASE", ("NAV_ID", "NAV_TYPE"))
        self.assertEqual(index.name, "idx_NAV_BASE_NAV_ID_NAV_TYPE")
        self.assertEqual(
            index.statement,
            'CREATE UNIQUE INDEX "idx_NAV_BASE_NAV_ID_NAV_TYPE" ON "NAV_BASE" ("NAV_ID", "NAV_TYPE");',
        )

    def test_shared_parent_key_yields_one_index(self):
        self.tables["TEST_OTHER"] = TableSchema(
            "TEST_OTHER", [ColumnDef("ID", "TEXT", False), ColumnDef("NOTE", "TEXT", True)]
        )
        fks = [
            ForeignKeyConstraint("TEST_CHILD", ("ID",), "TEST_BASE"),
            ForeignKeyConstraint("TEST_OTHER", ("ID",), "TEST_BASE"),
        ]
        create_tables, indexes = DDLSynthesizer(self.tables, fks).synthesize()
        self.assertEqual(len(create_tables), 3)
        self.assertEqual([i.name for i in indexes], ["idx_TEST_BASE_ID"])

    def test_output_is_deterministic(self):
        first = DDLSynthesizer(self.tables, self.fks).synthesize()
        reordered = dict(reversed(list(base_and_child().items())))
        second = DDLSynthesizer(reordered, list(reversed(self.fks))).synthesize()
        self.assertEqual(first[0], second[0])
        self.assertEqual([i.statement for i in first[1]], [i.statement for i in second[1]])

    def test_relationship_with_missing_table_is_skipped(self):
        fks = self.fks + [ForeignKeyConstraint("TEST_CHILD", ("ID",), "TEST_MISSING")]
        with self.assertLogs("nasr_extract", level="INFO") as logs:
            synthesizer = DDLSynthesizer(self.tables, fks)
        self.assertEqual(synthesizer.constraints, self.fks)
        self.assertTrue(any("TEST_MISSING" in line for line in logs.output))
        # Skips are routine for partial archives; warnings are kept for deletions.
        self.assertEqual({r.levelname for r in logs.records}, {"INFO"})

    def test_relationship_with_missing_column_is_skipped(self):
        fks = [ForeignKeyConstraint("TEST_CHILD", ("BASE_ID",), "TEST_BASE")]
        with self.assertLogs("nasr_extract", level="INFO") as logs:
            _, indexes = DDLSynthesizer(self.tables, fks).synthesize()
        self.assertEqual(indexes, [])
        self.assertEqual({r.levelname for r in logs.records}, {"INFO"})

    def test_statements_execute_in_sqlite(self):
        create_tables, indexes = DDLSynthesizer(self.tables, self.fks).synthesize()
        conn = sqlite3.connect(":memory:")
        try:
            for stmt in create_tables:
                conn.execute(stmt)
            for index in indexes:
                conn.execute(index.statement)
            fk_rows = conn.execute("PRAGMA foreign_key_list(TEST_CHILD)").fetchall()
            self.assertEqual([(r[2], r[3], r[4]) for r in fk_rows], [("TEST_BASE", "BASE_ID", "ID")])
            index_names = [r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")]
            self.assertIn("idx_TEST_BASE_ID", index_names)
        finally:
            conn.close()


class TestCatalog(unittest.TestCase):
    def test_catalog_shape(self):
        catalog = load_catalog()
        self.assertEqual(len(catalog), 38)
        self.assertEqual(len(set(catalog)), 38)
        for fk in catalog:
            self.assertTrue(fk.columns)
            self.assertEqual(fk.referenced_columns, fk.columns)

    def test_catalog_parent_keys(self):
        tables = {}
        for fk in load_catalog():
            for name in (fk.child_table, fk.parent_table):
                schema = tables.setdefault(name, TableSchema(name))
                for col in fk.columns:
                    if col not in schema.column_names():
                        schema.columns.append(ColumnDef(col, "TEXT", False))
        _, indexes = DDLSynthesizer(tables, load_catalog()).synthesize()
        self.assertEqual(len(indexes), 18)


class TestStreamNames(unittest.TestCase):
    def test_table_name_for_stream(self):
        self.assertEqual(table_name_for_stream("APT_BASE.csv"), "APT_BASE")
        self.assertEqual(table_name_for_stream("19_Feb_2026_CSV/APT_BASE.csv"), "APT_BASE")
        self.assertIsNone(table_name_for_stream("APT_CSV_DATA_STRUCTURE.csv"))
        self.assertIsNone(table_name_for_stream("APT_BASE.CSV"))
        self.assertIsNone(table_name_for_stream("README.txt"))


class TestDecodeStream(unittest.TestCase):
    def test_utf8_with_bom(self):
        self.assertEqual(decode_stream(b"\xef\xbb\xbfCAF\xc3\x89\r\n", "A.csv"), "CAFÉ\r\n")

    def test_invalid_utf8_is_kept_byte_for_byte_and_logged(self):
        with self.assertLogs("nasr_extract", level="WARNING") as logs:
            decoded = decode_stream(b"NAME\r\nCAF\xc9\r\n", "19_Feb_2026_CSV/APT_BASE.csv")
        self.assertEqual(decoded, "NAME\r\nCAFÉ\r\n")
        self.assertNotIn("�", decoded)
        self.assertIn("19_Feb_2026_CSV/APT_BASE.csv", logs.output[0])
        self.assertIn("0xc9", logs.output[0])


if __name__ == "__main__":
    unittest.main()
