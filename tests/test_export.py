from code_ledger.export import parse_export, render_export
from code_ledger.models import CodeListing


def test_render_export_layout():
    listing = CodeListing(product_id="p1", available=("A1", "A2"), sold=("S1",))

    assert render_export(listing) == "Non-sold:\nA1\nA2\n\nSold:\nS1"


def test_render_export_with_empty_sections():
    listing = CodeListing(product_id="p1", available=(), sold=())

    assert parse_export(render_export(listing)) == ([], [])


def test_parse_export_reads_sections_and_ignores_preamble():
    text = "codes for p1\nNon-sold:\nA1\r\n A2 \n\nSold:\nS1\nS2\n"

    assert parse_export(text) == (["A1", "A2"], ["S1", "S2"])


def test_ledger_export_matches_pool(ledger):
    ledger.insert_codes("p1", ["X1", "X2", "X3"])
    ledger.allocate("p1", 1, "o1")

    assert parse_export(ledger.export_codes("p1")) == (["X2", "X3"], ["X1"])
