import io

from dvf_market.data.dvf_parser import iter_parsed
from dvf_market.data.preprocess import OUTPUT_COLUMNS, extract_row, main, preprocess


def national(**cells: str) -> str:
    columns = [""] * 43
    for index, value in cells.items():
        columns[int(index[1:])] = value
    return "|".join(columns)


def sale(id: str = "2025-1", department: str = "93", kind: str = "Appartement", value: str = "312000,00",
         number: str = "12", street_type: str = "AV", street: str = "GABRIEL PERI") -> str:
    return national(
        c7=id, c8="03/01/2025", c10=value, c11=number, c13=street_type, c15=street,
        c16=f"{department}400", c17="SAINT-OUEN", c18=department,
        c36=kind, c38="52,5", c39="3",
    )


def test_extract_row_composes_address_and_normalizes_decimals():
    row = extract_row(sale().split("|"), "93")

    assert row == ["2025-1", "03/01/2025", "312000.00", "Appartement", "52.5", "93400", "3",
                   "12 avenue GABRIEL PERI", "SAINT-OUEN"]


def test_extract_row_filters_department_type_and_missing_cells():
    assert extract_row(sale(department="75").split("|"), "93") is None
    assert extract_row(sale(kind="Local industriel. commercial ou assimilé").split("|"), "93") is None
    assert extract_row(sale(value="").split("|"), "93") is None
    assert extract_row(["too", "short"], "93") is None


def test_preprocess_skips_header_and_writes_loader_format():
    lines = ["header line", sale("A"), sale("B", department="92"), sale("C", kind="Maison")]
    out = io.StringIO()

    stats = preprocess(lines, out, department="93")

    assert (stats.lines, stats.kept) == (4, 2)
    written = out.getvalue().splitlines()
    assert written[0] == ";".join(OUTPUT_COLUMNS)
    parsed = [r.value for r in iter_parsed(io.StringIO(out.getvalue()))]
    assert [t.id for t in parsed] == ["A", "C"]
    assert parsed[0].full_address == "12 avenue GABRIEL PERI"
    assert parsed[0].living_area == 52.5


def test_main_writes_the_extract(tmp_path):
    src = tmp_path / "ValeursFoncieres-2025.txt"
    src.write_text("\n".join(["header", sale("A"), sale("B")]) + "\n", encoding="utf-8")
    dst = tmp_path / "out" / "mutations_d93_2025.csv"

    assert main([str(src), str(dst), "--department", "93"]) == 0
    assert len(dst.read_text(encoding="utf-8").splitlines()) == 3


def test_main_fails_on_missing_input(tmp_path):
    assert main([str(tmp_path / "missing.txt"), str(tmp_path / "out.csv")]) == 1
