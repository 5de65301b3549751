"""Tests for lexicon, regional pronunciation and ontology importers."""

import pytest

from taxokit.config import ImportSettings
from taxokit.ingest import import_file
from taxokit.ingest.flat_importers import (
    import_lexicon,
    import_ontology_concepts,
    import_ontology_relations,
    import_regional_pronunciations,
)
from taxokit.models import LexiconTerm, OntologyConcept, OntologyRelation, RegionalPronunciation


@pytest.fixture
def regions_store(make_store):
    return make_store({
        "regional_tone_rules": [
            {"id": 1, "region_code": "sul", "region_name": "Sul",
             "preferred_terms": {"guri": "gu-RI", "IPCA": "old"}},
            {"id": 2, "region_code": "nordeste", "region_name": "Nordeste", "preferred_terms": None},
        ]
    })


@pytest.fixture
def concepts_store(make_store):
    return make_store({
        "global_taxonomy": [{"id": 10, "code": "pwa.world", "name": "World", "level": 2}],
        "ontology_concepts": [
            {"id": 1, "name": "SELIC", "name_normalized": "selic"},
            {"id": 2, "name": "Inflação", "name_normalized": "inflacao"},
        ],
    })


def make_relation(subject, obj, predicate="influences", row_number=2, weight=1.0):
    return OntologyRelation(subject_name=subject, predicate=predicate, object_name=obj,
                            row_number=row_number, weight=weight)


# =============================================================================
# LEXICON
# =============================================================================

class TestLexicon:

    def test_upsert_on_normalized_term(self, store):
        terms = [
            LexiconTerm(term="Selic", definition="first"),
            LexiconTerm(term="SELÍC", definition="second"),
            LexiconTerm(term="IPCA", definition="Inflation index", domain=["economy"]),
        ]

        result = import_lexicon(terms, store)

        stored = store.by("lexicon_terms", "term_normalized")
        assert set(stored) == {"selic", "ipca"}
        assert stored["selic"]["definition"] == "second"
        assert stored["ipca"]["is_approved"] is True
        assert result.errors == []

    def test_reimport_updates_in_place(self, store):
        import_lexicon([LexiconTerm(term="IPCA", definition="v1")], store)
        import_lexicon([LexiconTerm(term="ipca", definition="v2")], store)

        rows = store.rows("lexicon_terms")
        assert len(rows) == 1
        assert rows[0]["definition"] == "v2"


# =============================================================================
# REGIONAL PRONUNCIATIONS
# =============================================================================

class TestRegionalPronunciations:

    def test_merge_into_existing_terms(self, regions_store):
        overrides = [
            RegionalPronunciation(region="SUL", term="IPCA", pronunciation="í-pe-cá", row_number=2),
            RegionalPronunciation(region="SUL", term="bah", pronunciation="BAH", row_number=3),
            RegionalPronunciation(region="NORDESTE", term="real", pronunciation="réal", row_number=4),
        ]

        result = import_regional_pronunciations(overrides, regions_store)

        regions = regions_store.by("regional_tone_rules", "region_code")
        assert result.success_count == 3
        assert regions["sul"]["preferred_terms"] == {"guri": "gu-RI", "IPCA": "í-pe-cá", "bah": "BAH"}
        assert regions["sul"]["region_name"] == "Sul"
        assert regions["nordeste"]["preferred_terms"] == {"real": "réal"}

    def test_region_code_mapping(self):
        override = RegionalPronunciation(region="CENTRO_OESTE", term="trem", pronunciation="x", row_number=2)

        assert override.region_code == "centro-oeste"

    def test_unknown_region_is_reported_not_created(self, regions_store):
        overrides = [
            RegionalPronunciation(region="NORTE", term="égua", pronunciation="É-gua", row_number=2),
            RegionalPronunciation(region="SUL", term="bah", pronunciation="BAH", row_number=3),
        ]

        result = import_regional_pronunciations(overrides, regions_store)

        assert result.success_count == 1
        assert result.errors == ["Region not found: norte"]
        assert "norte" not in regions_store.by("regional_tone_rules", "region_code")

    def test_failed_region_does_not_block_others(self, regions_store):
        regions_store.fail_upsert = lambda table, rows: rows[0]["region_code"] == "sul"
        overrides = [
            RegionalPronunciation(region="SUL", term="bah", pronunciation="BAH", row_number=2),
            RegionalPronunciation(region="NORDESTE", term="oxe", pronunciation="Ó-xe", row_number=3),
        ]

        result = import_regional_pronunciations(overrides, regions_store)

        assert result.success_count == 1
        assert result.errors[0].startswith("Region sul: update failed")


# =============================================================================
# ONTOLOGY
# =============================================================================

class TestOntologyConcepts:

    def test_taxonomy_link_resolved(self, concepts_store):
        concepts = [
            OntologyConcept(name="Juros", row_number=2, taxonomy_code="pwa.world",
                            properties={"type": "indicator"}),
            OntologyConcept(name="Câmbio", row_number=3),
        ]

        result = import_ontology_concepts(concepts, concepts_store)

        stored = concepts_store.by("ontology_concepts", "name_normalized")
        assert result.success_count == 2
        assert stored["juros"]["taxonomy_id"] == 10
        assert stored["juros"]["properties"] == {"type": "indicator"}
        assert stored["cambio"]["taxonomy_id"] is None

    def test_unknown_taxonomy_code(self, concepts_store):
        concepts = [OntologyConcept(name="PIB", row_number=4, taxonomy_code="pwa.nope")]

        result = import_ontology_concepts(concepts, concepts_store)

        assert result.success_count == 0
        assert result.errors == ['Row 4: taxonomy code "pwa.nope" not found for concept "PIB"']

    def test_failed_taxonomy_lookup_is_reported_once(self, concepts_store):
        def broken_select(*args, **kwargs):
            raise RuntimeError("connection reset")

        concepts_store.select = broken_select
        concepts = [
            OntologyConcept(name="PIB", row_number=2, taxonomy_code="pwa.world"),
            OntologyConcept(name="Juros", row_number=3, taxonomy_code="pwa.world"),
            OntologyConcept(name="Câmbio", row_number=4),
        ]

        result = import_ontology_concepts(concepts, concepts_store)

        assert result.success_count == 1
        assert result.errors == [
            "Ontology concepts: lookup in global_taxonomy failed: connection reset"
        ]
        assert [r["name"] for r in concepts_store.upsert_calls("ontology_concepts")[0]] == ["Câmbio"]


class TestOntologyRelations:

    def test_names_resolved_case_and_accent_insensitively(self, concepts_store):
        result = import_ontology_relations(
            [make_relation("selic", "INFLACAO", weight=0.8)], concepts_store
        )

        assert result.errors == []
        assert concepts_store.rows("ontology_relations") == [
            {"id": 1001, "subject_id": 1, "predicate": "influences", "object_id": 2, "weight": 0.8}
        ]

    def test_unknown_concepts_are_never_sent(self, concepts_store):
        result = import_ontology_relations(
            [make_relation("SELIC", "PIB", row_number=5), make_relation("Câmbio", "PIB", row_number=6)],
            concepts_store,
        )

        assert result.success_count == 0
        assert result.errors == [
            'Row 5: concept not found: "PIB"',
            'Row 6: concept not found: "Câmbio", "PIB"',
        ]
        assert concepts_store.upsert_calls("ontology_relations") == []

    def test_self_relation_after_resolution(self, concepts_store):
        result = import_ontology_relations([make_relation("Inflação", "inflacao")], concepts_store)

        assert result.errors == ['Row 2: self-relation not allowed: "Inflação" -> "inflacao"']

    def test_failed_concept_lookup_is_reported_once(self, concepts_store):
        def broken_select(*args, **kwargs):
            raise RuntimeError("connection reset")

        concepts_store.select = broken_select

        result = import_ontology_relations(
            [make_relation("SELIC", "Inflação"), make_relation("SELIC", "PIB", row_number=3)],
            concepts_store,
        )

        assert result.success_count == 0
        assert result.errors == [
            "Ontology relations: lookup in ontology_concepts failed: connection reset"
        ]
        assert concepts_store.upsert_calls("ontology_relations") == []

    def test_reimport_updates_weight(self, concepts_store):
        import_ontology_relations([make_relation("SELIC", "Inflação", weight=0.5)], concepts_store)
        import_ontology_relations([make_relation("SELIC", "Inflação", weight=0.9)], concepts_store)

        rows = concepts_store.rows("ontology_relations")
        assert len(rows) == 1
        assert rows[0]["weight"] == 0.9


# =============================================================================
# END TO END
# =============================================================================

class TestImportFile:

    def test_taxonomy_csv(self, store, tmp_path):
        path = tmp_path / "taxonomy.csv"
        path.write_text(
            "code,name,level,parent_code,keywords\n"
            "pwa.world,World,2,pwa,indicators;news\n"
            "pwa,PWA,1,,app\n"
            "bad,,9,,\n"
            "pwa.orphan,Orphan,2,nowhere,\n",
            encoding="utf-8",
        )
        events = []

        report, result = import_file(str(path), "taxonomy", store,
                                     settings=ImportSettings(batch_size=10),
                                     progress_callback=events.append)

        assert report.valid_count == 3
        assert result.success_count == 2
        assert result.errors == [
            'Row 4: Missing required field "name"; "level" must be between 1 and 5 (got 9)',
            'Level 2: parent "nowhere" not found for "pwa.orphan"',
        ]
        assert store.by("global_taxonomy", "code")["pwa.world"]["keywords"] == ["indicators", "news"]
        assert [e.context for e in events] == ["Level 1", "Level 2"]

    def test_lexicon_template_round_trip(self, store, tmp_path):
        from taxokit.parser import TabularParser

        path = TabularParser().export_template("lexicon", str(tmp_path / "lexicon.xlsx"))

        report, result = import_file(path, "lexicon", store)

        assert result.ok
        assert result.to_dict() == {"successCount": 2, "errors": []}

    def test_unknown_entity(self, store, tmp_path):
        with pytest.raises(ValueError, match="Unknown entity type"):
            import_file(str(tmp_path / "x.csv"), "widgets", store)
