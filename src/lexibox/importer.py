"""Import word lists from various file formats."""
import csv
import io
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from lexibox.content import ContentGenerator, WordDefinition
from lexibox.errors import ValidationError
from lexibox.flashcards import add_word, create_flashcard
from lexibox.store import CardStore

# "word<TAB>translation", "word;translation", "word - translation", "word = translation"
LINE_SPLIT = re.compile(r"\t|;|\s+-\s+|\s*=\s*")


@dataclass
class WordEntry:
    word: str
    translation: str = ""
    definition: str = ""
    example: str = ""
    tags: list[str] = field(default_factory=list)


def read_file_content(file_path: str) -> str:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix in (".txt", ".md", ".csv", ".tsv", ".json", ".yaml", ".yml"):
        return path.read_text(encoding="utf-8")
    elif suffix == ".pdf":
        from PyPDF2 import PdfReader
        reader = PdfReader(file_path)
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    elif suffix == ".docx":
        from docx import Document
        doc = Document(file_path)
        return "\n".join(p.text for p in doc.paragraphs)
    elif suffix in (".html", ".htm"):
        from bs4 import BeautifulSoup
        html = path.read_text(encoding="utf-8")
        return BeautifulSoup(html, "html.parser").get_text("\n")
    else:
        # Try reading as plain text
        return path.read_text(encoding="utf-8")


def _entry_from_mapping(item: dict) -> Optional[WordEntry]:
    word = str(item.get("word") or "").strip()
    if not word:
        return None
    tags = item.get("tags") or []
    if isinstance(tags, str):
        tags = tags.split(",")
    return WordEntry(
        word=word,
        translation=str(item.get("translation") or "").strip(),
        definition=str(item.get("definition") or "").strip(),
        example=str(item.get("example") or "").strip(),
        tags=[str(t) for t in tags],
    )


def parse_structured(data) -> list[WordEntry]:
    """Entries from decoded JSON/YAML: a list, or a mapping with a 'words' list."""
    if isinstance(data, dict):
        data = data.get("words") or data.get("flashcards") or []
    entries = []
    for item in data or []:
        if isinstance(item, str):
            entry = WordEntry(word=item.strip()) if item.strip() else None
        elif isinstance(item, dict):
            entry = _entry_from_mapping(item)
        else:
            entry = None
        if entry:
            entries.append(entry)
    return entries


def parse_lines(text: str) -> list[WordEntry]:
    entries = []
    for line in text.splitlines():
        line = line.strip().lstrip("-*•").strip()
        if not line or line.startswith("#"):
            continue
        parts = LINE_SPLIT.split(line, maxsplit=1)
        word = parts[0].strip()
        translation = parts[1].strip() if len(parts) > 1 else ""
        if word:
            entries.append(WordEntry(word=word, translation=translation))
    return entries


def parse_csv(text: str) -> list[WordEntry]:
    rows = list(csv.reader(io.StringIO(text)))
    if not rows:
        return []
    header = [h.strip().lower() for h in rows[0]]
    if "word" in header:
        return parse_structured([dict(zip(header, row)) for row in rows[1:]])
    return [
        WordEntry(word=row[0].strip(), translation=row[1].strip() if len(row) > 1 else "")
        for row in rows if row and row[0].strip()
    ]


def load_entries(file_path: str) -> list[WordEntry]:
    suffix = Path(file_path).suffix.lower()
    content = read_file_content(file_path)
    if suffix == ".json":
        return parse_structured(json.loads(content))
    elif suffix in (".yaml", ".yml"):
        import yaml
        return parse_structured(yaml.safe_load(content))
    elif suffix == ".csv":
        return parse_csv(content)
    return parse_lines(content)


def import_entries(
    store: CardStore,
    entries: Iterable[WordEntry],
    source_language: str,
    target_language: str,
    generator: Optional[ContentGenerator] = None,
    tags: Optional[Iterable[str]] = None,
) -> dict:
    """Create a card per entry. Duplicates and invalid words are skipped, not fatal."""
    added, skipped = [], []
    tags = list(tags or [])
    for entry in entries:
        try:
            if entry.definition or entry.translation:
                content = WordDefinition(
                    word=entry.word,
                    definition=entry.definition or entry.translation,
                    translation=entry.translation,
                    example=entry.example,
                )
                card = create_flashcard(store, content, source_language, target_language, tags=[*tags, *entry.tags])
            else:
                card = add_word(store, entry.word, source_language, target_language, generator, tags=[*tags, *entry.tags])
        except ValidationError as e:
            logger.debug("Skipped '{}': {}", entry.word, e)
            skipped.append(entry.word)
            continue
        added.append(card.word)
    return {"added": added, "skipped": skipped}


def import_file(
    store: CardStore,
    file_path: str,
    source_language: str,
    target_language: str,
    generator: Optional[ContentGenerator] = None,
    tags: Optional[Iterable[str]] = None,
) -> dict:
    """Import a word list file. Returns filename plus added/skipped words."""
    entries = load_entries(file_path)
    result = import_entries(store, entries, source_language, target_language, generator, tags)
    logger.info("Imported {}: {} added, {} skipped", file_path, len(result["added"]), len(result["skipped"]))
    return {"filename": Path(file_path).name, **result}
