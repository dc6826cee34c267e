"""Tests for deterministic normalization of the raw export.

Groups:
  - HTML folding
  - Region classification
  - Category slugs
  - Record normalization
  - Corpus aggregation and file output
"""

from __future__ import annotations

import json

import pytest

from qbank.cleanup.categories import SERIES_SLUGS, normalize_category_key, slugify
from qbank.cleanup.html import clean_html
from qbank.cleanup.normalizer import normalize_corpus, normalize_record, run_cleanup
from qbank.cleanup.regions import detect_region
from qbank.models import RawOption, RawRecord, RegionCode


# ======================================================================
# HTML folding
# ======================================================================


class TestCleanHtml:
    def test_paragraph_tags_removed(self):
        assert clean_html("<p>Wat is de max snelheid?</p>") == "Wat is de max snelheid?"

    def test_entities_decoded(self):
        assert clean_html("Caf&eacute; &amp; weg&nbsp;A") == "Café & weg\xa0A"

    def test_line_breaks_become_newlines(self):
        assert clean_html("Eerste<br>Tweede<br/>Derde<BR />Vierde") == (
            "Eerste\nTweede\nDerde\nVierde"
        )

    def test_emphasis_keeps_text(self):
        assert clean_html("Dit is <strong>verboden</strong> op de <em>weg</em>.") == (
            "Dit is verboden op de weg."
        )

    def test_unknown_tags_removed(self):
        assert clean_html('<span class="x">Tekst</span><img src="a.png">') == "Tekst"

    def test_excess_newlines_collapse_to_two(self):
        assert clean_html("A<br><br><br><br>B") == "A\n\nB"

    def test_adjacent_paragraphs_stay_separated(self):
        assert clean_html("<p>Een</p><p>Twee</p>") == "Een\n\nTwee"

    def test_whitespace_trimmed(self):
        assert clean_html("   <p> tekst </p>  ") == "tekst"

    @pytest.mark.parametrize("value", [None, "", 42])
    def test_degenerate_input_returns_empty(self, value):
        assert clean_html(value) == ""


# ======================================================================
# Region classification
# ======================================================================


class TestDetectRegion:
    def test_no_keyword_is_national(self):
        assert detect_region("Hoe snel mag je rijden?", "Op de autosnelweg 120.") is (
            RegionCode.NATIONAL
        )

    def test_flemish_keyword(self):
        assert detect_region("Vraag", "In het Vlaamse Gewest...") is RegionCode.FLANDERS

    def test_brussels_keyword_case_insensitive(self):
        assert detect_region("In BRUSSEL geldt dit.", "") is RegionCode.BRUSSELS

    def test_wallonia_with_diacritic(self):
        assert detect_region("", "Dit geldt in Wallonië.") is RegionCode.WALLONIA

    def test_keyword_in_explanation_only(self):
        assert detect_region("Mag dit?", "Alleen in Vlaanderen.") is RegionCode.FLANDERS

    @pytest.mark.parametrize(
        "question,explanation",
        [
            ("", ""),
            ("Vlaams en Waals", ""),
            ("Brussel", "Vlaanderen"),
            ("niets", "nog minder"),
        ],
    )
    def test_every_text_gets_exactly_one_region(self, question, explanation):
        region = detect_region(question, explanation)
        assert region in set(RegionCode)

    def test_deterministic(self):
        text = ("Parkeren in Brussel en Vlaanderen", "uitleg")
        assert detect_region(*text) is detect_region(*text)


# ======================================================================
# Category slugs
# ======================================================================


class TestCategorySlugs:
    def test_mapped_numeric_key(self):
        assert normalize_category_key(56) == "verkeersborden"

    def test_unmapped_numeric_key_falls_back(self):
        assert normalize_category_key(9999) == "series-9999"

    def test_string_key_slugified(self):
        assert normalize_category_key("My Category!!") == "my-category"

    def test_slugify_collapses_runs_and_trims(self):
        assert slugify("--Stilstaan & Parkeren (2)--") == "stilstaan-parkeren-2"

    def test_numeric_string_is_not_looked_up(self):
        assert normalize_category_key("56") == "56"

    def test_table_slugs_are_already_slugs(self):
        for slug in SERIES_SLUGS.values():
            assert slugify(slug) == slug


# ======================================================================
# Record normalization
# ======================================================================


def _scenario_record() -> RawRecord:
    return RawRecord(
        id="42",
        series_id=56,
        question="<p>Wat is de max snelheid?</p>",
        explanation="In het Vlaamse Gewest...",
        answer=0,
        answer_type="SINGLE_CHOICE",
        choices=(RawOption(text="50"), RawOption(text="70")),
    )


class TestNormalizeRecord:
    def test_concrete_scenario(self):
        record = normalize_record(_scenario_record())

        assert record.original_id == "42"
        assert record.category_slug == "verkeersborden"
        assert record.region_code == "flanders"
        assert record.question_text == "Wat is de max snelheid?"
        assert [c.position for c in record.choices] == [0, 1]
        assert [c.text for c in record.choices] == ["50", "70"]

    def test_originals_mirror_live_text(self):
        record = normalize_record(_scenario_record())
        assert record.question_text_original == record.question_text
        assert record.explanation_original == record.explanation

    def test_idempotent_serialization(self):
        raw = _scenario_record()
        first = json.dumps(normalize_record(raw).to_dict(), sort_keys=True)
        second = json.dumps(normalize_record(raw).to_dict(), sort_keys=True)
        assert first == second

    def test_option_positions_contiguous_and_images_kept(self):
        raw = RawRecord(
            id="7",
            series_id=38,
            question="Volgorde?",
            explanation="",
            answer=[2, 0, 1],
            answer_type="ORDER",
            choices=(
                RawOption(image="img-a"),
                RawOption(text="<b>B</b>"),
                RawOption(text="", image=""),
            ),
        )
        record = normalize_record(raw)
        assert [c.position for c in record.choices] == [0, 1, 2]
        assert record.choices[0].image_uuid == "img-a"
        assert record.choices[1].text == "B"
        assert record.choices[2].text is None
        assert record.choices[2].image_uuid is None

    def test_malformed_markup_does_not_raise(self):
        raw = RawRecord(
            id="8",
            series_id="x",
            question="<p>Onafgesloten <strong>tag",
            explanation="<<>>",
            answer=0,
            answer_type="SINGLE_CHOICE",
        )
        record = normalize_record(raw)
        assert record.question_text == "Onafgesloten tag"
        assert record.region_code == "national"


# ======================================================================
# Corpus aggregation
# ======================================================================


class TestNormalizeCorpus:
    def test_metadata_and_categories(self, raw_payload):
        raws = [RawRecord.from_dict(d) for d in raw_payload["data"]]
        corpus = normalize_corpus(raws, raw_payload["assetsBaseUrl"])

        assert [r.original_id for r in corpus.records] == ["42", "43", "44", "45"]
        assert corpus.categories == sorted(
            ["verkeersborden", "brussel-amp-parkeren", "series-9999", "snelheid"]
        )
        meta = corpus.metadata
        assert meta["totalQuestions"] == 4
        assert meta["totalCategories"] == 4
        # img-42, video:vid-1, img-a, img-b
        assert meta["totalAssets"] == 4
        assert meta["regionDistribution"] == {
            "national": 2,
            "brussels": 1,
            "flanders": 1,
            "wallonia": 0,
        }
        assert "processedAt" in meta

    def test_region_distribution_sums_to_total(self, raw_payload):
        raws = [RawRecord.from_dict(d) for d in raw_payload["data"]]
        corpus = normalize_corpus(raws)
        assert sum(corpus.metadata["regionDistribution"].values()) == len(corpus.records)

    def test_run_cleanup_writes_canonical_file(self, raw_payload, paths):
        paths.raw_file.write_text(json.dumps(raw_payload))

        run_cleanup(paths.raw_file, paths.cleaned_file)

        written = json.loads(paths.cleaned_file.read_text())
        assert written["assetsBaseUrl"] == "https://assets.example.test/"
        assert set(written) == {"assetsBaseUrl", "metadata", "categories", "data"}
        first = written["data"][0]
        assert first["originalId"] == "42"
        assert first["questionText"] == "Wat is de max snelheid?"
        assert first["questionTextOriginal"] == "Wat is de max snelheid?"
        assert first["videoId"] is None
        assert written["data"][1]["explanation"] == "Nee, dit is verboden."

    def test_run_cleanup_missing_input(self, paths):
        with pytest.raises(FileNotFoundError):
            run_cleanup(paths.raw_file, paths.cleaned_file)
