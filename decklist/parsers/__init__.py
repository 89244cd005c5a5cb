from decklist.parsers.collection_import import (
    CollectionFormat,
    DelimitedFormat,
    SimpleTextFormat,
    available_formats,
    detect_format,
    load_collection,
    load_collection_file,
    parse_collection_text,
    register_format,
)
from decklist.parsers.decklist import (
    DeckLine,
    load_decklist,
    load_decklist_file,
    parse_deck_line,
    parse_decklist_text,
)
from decklist.parsers.scryfall import extract_card_names, load_snapshot, read_bulk_file

__all__ = [
    "CollectionFormat",
    "DeckLine",
    "DelimitedFormat",
    "SimpleTextFormat",
    "available_formats",
    "detect_format",
    "extract_card_names",
    "load_collection",
    "load_collection_file",
    "load_decklist",
    "load_decklist_file",
    "load_snapshot",
    "parse_collection_text",
    "parse_deck_line",
    "parse_decklist_text",
    "read_bulk_file",
    "register_format",
]
