import json
import time
import zipfile
from pathlib import Path

from bs4 import BeautifulSoup
from typer.testing import CliRunner

from gloss_annotator.cli import app
from gloss_annotator.epub import read_epub_chapters
from tests.utils import chapter_xhtml, write_minimal_epub, write_static_responses

runner = CliRunner()

STORY = "I've seen New York before.\n\nShe gave up."

RESPONSES = {
    "I've seen New York before.": {
        "words": [
            {"word": "I've", "lemma": "i", "annotation": "I have"},
            {"word": "seen", "lemma": "see", "annotation": "looked at"},
            {"word": "before", "lemma": "before", "annotation": "earlier"},
        ],
        "proper_nouns": [{"phrase": "New York", "annotation": "a US city"}],
    },
    "She gave up.": {
        "words": [
            {"word": "She", "lemma": "she", "annotation": "that woman"},
            {"word": "gave", "lemma": "give", "annotation": "handed"},
            {"word": "up", "lemma": "up", "annotation": "upward"},
        ],
        "mwes": [{"phrase": "gave up", "lemma": "give up", "annotation": "quit"}],
    },
}


def _static_args(tmp_path: Path) -> list[str]:
    responses = write_static_responses(tmp_path / "responses.json", RESPONSES)
    return ["--provider", "static", "--responses", str(responses)]


def test_cli_print_config():
    """print-config command dumps the default configuration values."""
    result = runner.invoke(app, ["print-config"])
    assert result.exit_code == 0
    assert "window_size" in result.stdout
    assert "target_language: English" in result.stdout


def test_cli_annotate_text_file(tmp_path: Path):
    """annotate turns blank-line paragraphs into annotated HTML and a summary."""
    source = tmp_path / "story.txt"
    source.write_text(STORY, encoding="utf-8")

    result = runner.invoke(app, ["annotate", str(source), *_static_args(tmp_path)])

    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["paragraphs"] == 2
    assert summary["states"]["annotated"] == 2
    assert summary["provider_calls"] == 4
    output = tmp_path / "story.annotated.html"
    assert summary["output"] == str(output)
    soup = BeautifulSoup(output.read_text(encoding="utf-8"), "html.parser")
    assert len(soup.select("ruby.word")) == 6
    assert soup.select_one("span.phrase.propn")["data-phrase"] == "New York"
    assert soup.select_one("span.phrase.mwe")["lemma"] == "give up"


def test_cli_annotate_html_respects_no_phrases(tmp_path: Path):
    source = tmp_path / "page.html"
    source.write_text(
        "<html><body><p>I've seen New York before.</p><pre>She gave up.</pre></body></html>",
        encoding="utf-8",
    )
    output = tmp_path / "out" / "page.html"

    result = runner.invoke(
        app,
        ["annotate", str(source), "-o", str(output), "--no-phrases", *_static_args(tmp_path)],
    )

    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["states"] == {
        "unannotated": 1,
        "processing": 0,
        "annotated": 1,
        "failed": 0,
    }
    assert summary["provider_calls"] == 1
    soup = BeautifulSoup(output.read_text(encoding="utf-8"), "html.parser")
    assert soup.select("span.phrase") == []
    assert soup.pre.get_text() == "She gave up."


def test_cli_annotate_epub(tmp_path: Path):
    """annotate rewrites each EPUB chapter and keeps the rest of the archive."""
    source = tmp_path / "novella.epub"
    write_minimal_epub(
        source,
        chapters=[chapter_xhtml("I've seen New York before."), chapter_xhtml("She gave up.")],
    )

    result = runner.invoke(app, ["annotate", str(source), *_static_args(tmp_path)])

    assert result.exit_code == 0, result.output
    output = tmp_path / "novella.annotated.epub"
    assert json.loads(result.stdout)["states"]["annotated"] == 2
    chapters = read_epub_chapters(output)
    assert 'data-phrase="New York"' in chapters[0].markup
    assert 'lemma="give up"' in chapters[1].markup
    with zipfile.ZipFile(output) as zf:
        assert zf.namelist()[0] == "mimetype"


def test_cli_annotate_marks_known_vocabulary(tmp_path: Path):
    wordlist = tmp_path / "known.txt"
    wordlist.write_text("# words I know\nsee\n\nNew York\n", encoding="utf-8")
    vocabulary = tmp_path / "vocab.json"
    imported = runner.invoke(
        app, ["vocab-import", str(wordlist), "--vocabulary", str(vocabulary)]
    )
    assert imported.exit_code == 0, imported.output
    assert "Imported 2 new entries (2 total)" in imported.stdout

    source = tmp_path / "story.txt"
    source.write_text(STORY, encoding="utf-8")
    result = runner.invoke(
        app,
        ["annotate", str(source), "--vocabulary", str(vocabulary), *_static_args(tmp_path)],
    )

    assert result.exit_code == 0, result.output
    soup = BeautifulSoup(
        (tmp_path / "story.annotated.html").read_text(encoding="utf-8"), "html.parser"
    )
    assert "known" in soup.select_one('ruby[lemma="see"]')["class"]
    assert "unknown" in soup.select_one('ruby[lemma="give"]')["class"]
    assert "known" in soup.select_one("span.phrase.propn")["class"]


def test_cli_vocab_import_replace(tmp_path: Path):
    vocabulary = tmp_path / "vocab.json"
    first = tmp_path / "first.json"
    first.write_text(json.dumps(["alpha", "beta"]), encoding="utf-8")
    second = tmp_path / "second.txt"
    second.write_text("gamma\n", encoding="utf-8")

    runner.invoke(app, ["vocab-import", str(first), "--vocabulary", str(vocabulary)])
    result = runner.invoke(
        app, ["vocab-import", str(second), "--vocabulary", str(vocabulary), "--replace"]
    )

    assert result.exit_code == 0, result.output
    assert "Vocabulary replaced with 1 entries" in result.stdout
    assert "gamma" in vocabulary.read_text(encoding="utf-8")
    assert "alpha" not in vocabulary.read_text(encoding="utf-8")


def test_cli_align_prints_markup(tmp_path: Path):
    response = tmp_path / "response.json"
    response.write_text(json.dumps(RESPONSES["She gave up."]), encoding="utf-8")

    result = runner.invoke(
        app, ["align", "--text", "She gave up.", "--response", str(response)]
    )

    assert result.exit_code == 0, result.output
    soup = BeautifulSoup(result.stdout, "html.parser")
    assert [ruby["lemma"] for ruby in soup.select("ruby.word")] == ["she", "give", "up"]
    assert soup.select_one("span.phrase.mwe") is not None


def test_cli_clean_cache_drops_expired_entries(tmp_path: Path):
    cache_path = tmp_path / "cache.json"
    cache_path.write_text(
        json.dumps(
            {
                "v1:stale": [0, {"words": []}],
                "v1:fresh": [time.time(), {"words": []}],
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["clean-cache", "--cache-path", str(cache_path)])

    assert result.exit_code == 0, result.output
    assert "Removed 1 expired entries; 1 remain" in result.stdout
    assert list(json.loads(cache_path.read_text(encoding="utf-8"))) == ["v1:fresh"]


def test_cli_annotate_rejects_unsupported_input(tmp_path: Path):
    source = tmp_path / "notes.md"
    source.write_text("# Notes", encoding="utf-8")
    result = runner.invoke(app, ["annotate", str(source), *_static_args(tmp_path)])
    assert result.exit_code != 0


def test_cli_annotate_openai_requires_key(tmp_path: Path):
    source = tmp_path / "story.txt"
    source.write_text(STORY, encoding="utf-8")
    result = runner.invoke(
        app,
        ["annotate", str(source), "--openai-api-key-env", "GLOSS_MISSING_KEY"],
        env={"GLOSS_MISSING_KEY": ""},
    )
    assert result.exit_code != 0
