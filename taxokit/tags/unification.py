"""
Tag unification: propose merges and adoptions, apply confirmed ones.

Two passes run over the persisted tag set:

1. Merge pass. Every unordered pair inside a scope is scored: root tags
   against each other, and the children of one parent against each other.
   A pair is surfaced when a merge-reason heuristic fires, or else when its
   textual similarity reaches the scope threshold.
2. Adoption pass. Every orphan child tag is matched against the root tags;
   the best root is surfaced when its score reaches the adoption threshold.

Proposing is read-only. apply_suggestion() is the only call that writes,
and nothing is written unless an operator confirms.
"""

import logging
from itertools import combinations
from typing import Any, Dict, List, Optional, Set, Union

from ..config import ImportSettings
from ..heuristics import suggest_merge_reasons
from ..ingest.store import ImportResult, Store
from ..similarity import similarity_score
from .models import (
    MERGE_RULES_CONFLICT_KEY,
    MERGE_RULES_TABLE,
    MODIFICATION_LOGS_TABLE,
    TAG_TYPE_CHILD,
    TAGS_TABLE,
    AdoptionSuggestion,
    Decision,
    MergeSuggestion,
    Scope,
    SuggestionState,
    Tag,
    TagMergeRule,
    TagModificationLog,
)

logger = logging.getLogger(__name__)

Suggestion = Union[MergeSuggestion, AdoptionSuggestion]


def similarity_explanation(similarity: float) -> str:
    return f"textual similarity of {round(similarity)}%"


class TagUnificationEngine:
    """
    Finds near-duplicate tags and applies operator decisions.

    Dismissals are kept for the life of the engine only; nothing about a
    dismissal is persisted.
    """

    def __init__(
        self,
        store: Store,
        chat_type: str = "health",
        root_threshold: float = 0.7,
        child_threshold: float = 0.6,
        adoption_threshold: float = 0.5,
        acronyms: Optional[Dict[str, List[str]]] = None,
        created_by: str = "admin"
    ):
        """
        Args:
            store: Store holding document_tags and receiving rules and logs
            chat_type: Scope written on merge rules and audit logs
            root_threshold: Similarity fallback (0-1) for root-tag pairs
            child_threshold: Similarity fallback (0-1) for sibling child tags
            adoption_threshold: Minimum score (0-1) to propose an adoption
            acronyms: Extra acronym -> expansions entries for the heuristics
            created_by: Author recorded on rules and logs
        """
        self.store = store
        self.chat_type = chat_type
        self.thresholds = {Scope.ROOT: root_threshold, Scope.CHILD: child_threshold}
        self.adoption_threshold = adoption_threshold
        self.acronyms = acronyms
        self.created_by = created_by

        self.tags: List[Tag] = []
        self._suggestions: Dict[str, Suggestion] = {}
        self._dismissed_pairs: Set[frozenset] = set()
        self._dismissed_orphans: Set[Any] = set()

    @classmethod
    def from_settings(cls, store: Store, settings: ImportSettings, **kwargs) -> "TagUnificationEngine":
        return cls(
            store,
            chat_type=settings.chat_type,
            root_threshold=settings.root_similarity,
            child_threshold=settings.child_similarity,
            adoption_threshold=settings.adoption_similarity,
            **kwargs,
        )

    # =========================================================================
    # TAG SET
    # =========================================================================

    def load_tags(self) -> List[Tag]:
        """Read every tag from the store and make it the working set."""
        self.tags = [Tag.from_row(row) for row in self.store.select(TAGS_TABLE)]
        logger.info(f"Loaded {len(self.tags)} tags")
        return self.tags

    def _working_set(self, tags: Optional[List[Tag]]) -> List[Tag]:
        if tags is not None:
            self.tags = list(tags)
        elif not self.tags:
            self.load_tags()
        return self.tags

    def scopes(self, tags: Optional[List[Tag]] = None) -> Dict[str, Any]:
        """
        Split tags into scopes.

        Returns:
            {"roots": [...], "children": {parent_id: [...]}, "orphans": [...]}.
            Roots are tags that are not child-typed and have no existing
            parent (a dangling parent id is logged); children share an
            existing parent; orphans are child-typed tags whose parent is
            missing or points at no known tag.
        """
        tags = self._working_set(tags)
        ids = {t.id for t in tags}

        roots: List[Tag] = []
        children: Dict[Any, List[Tag]] = {}
        orphans: List[Tag] = []

        for tag in tags:
            if tag.has_parent and tag.parent_tag_id in ids:
                children.setdefault(tag.parent_tag_id, []).append(tag)
            elif tag.tag_type == TAG_TYPE_CHILD:
                orphans.append(tag)
            else:
                if tag.has_parent:
                    logger.warning(
                        f"Tag {tag.id} ({tag.tag_name}) points at missing parent "
                        f"{tag.parent_tag_id}; treating it as a root"
                    )
                roots.append(tag)

        return {"roots": roots, "children": children, "orphans": orphans}

    # =========================================================================
    # PROPOSALS
    # =========================================================================

    def _score_pair(self, a: Tag, b: Tag, scope: Scope,
                    parent_tag_id: Optional[Any]) -> Optional[MergeSuggestion]:
        similarity = similarity_score(a.tag_name, b.tag_name)
        heuristic = suggest_merge_reasons(a.tag_name, b.tag_name, self.acronyms)

        if heuristic.confidence > 0:
            confidence = heuristic.confidence
            reasons = list(heuristic.reasons)
            explanations = list(heuristic.explanations)
        elif similarity / 100.0 >= self.thresholds[scope]:
            confidence = similarity / 100.0
            reasons = []
            explanations = [similarity_explanation(similarity)]
        else:
            return None

        return MergeSuggestion(
            id=f"{a.id}-{b.id}",
            tag_a=a,
            tag_b=b,
            scope=scope,
            similarity=similarity,
            confidence=confidence,
            reasons=reasons,
            explanations=explanations,
            parent_tag_id=parent_tag_id,
        )

    def propose_suggestions(self, tags: Optional[List[Tag]] = None) -> List[MergeSuggestion]:
        """
        Propose merges within each scope.

        Args:
            tags: Tag set to use (default: the loaded set, read from the store
                on first use)

        Returns:
            Merge suggestions sorted by descending confidence, dismissed pairs
            excluded
        """
        scopes = self.scopes(tags)
        groups = [(Scope.ROOT, None, scopes["roots"])]
        groups += [(Scope.CHILD, parent_id, members) for parent_id, members in scopes["children"].items()]

        suggestions: List[MergeSuggestion] = []
        for scope, parent_id, members in groups:
            for a, b in combinations(members, 2):
                if frozenset((a.id, b.id)) in self._dismissed_pairs:
                    continue
                suggestion = self._score_pair(a, b, scope, parent_id)
                if suggestion is not None:
                    suggestions.append(suggestion)

        suggestions.sort(key=lambda s: (-s.confidence, -s.similarity))
        self._register(suggestions, MergeSuggestion)
        logger.info(f"Proposed {len(suggestions)} merge suggestions")
        return suggestions

    def propose_adoptions(self, tags: Optional[List[Tag]] = None) -> List[AdoptionSuggestion]:
        """
        Propose a root parent for each orphan child tag.

        The score of a candidate is max(similarity / 100, heuristic
        confidence); only the best candidate per orphan is kept, and only if
        it reaches the adoption threshold.

        Returns:
            Adoption suggestions sorted by descending confidence, dismissed
            orphans excluded
        """
        scopes = self.scopes(tags)
        roots = scopes["roots"]

        suggestions: List[AdoptionSuggestion] = []
        for orphan in scopes["orphans"]:
            if orphan.id in self._dismissed_orphans:
                continue

            best: Optional[AdoptionSuggestion] = None
            for root in roots:
                similarity = similarity_score(orphan.tag_name, root.tag_name)
                heuristic = suggest_merge_reasons(orphan.tag_name, root.tag_name, self.acronyms)
                score = max(similarity / 100.0, heuristic.confidence)
                if best is not None and score <= best.confidence:
                    continue
                best = AdoptionSuggestion(
                    id=f"adopt-{orphan.id}",
                    orphan=orphan,
                    parent=root,
                    similarity=similarity,
                    confidence=score,
                    reasons=list(heuristic.reasons),
                    explanations=list(heuristic.explanations) or [similarity_explanation(similarity)],
                )

            if best is not None and best.confidence >= self.adoption_threshold:
                suggestions.append(best)

        suggestions.sort(key=lambda s: -s.confidence)
        self._register(suggestions, AdoptionSuggestion)
        logger.info(f"Proposed {len(suggestions)} adoption suggestions")
        return suggestions

    def _register(self, suggestions: List[Suggestion], kind: type) -> None:
        # A new proposal round replaces the open suggestions of the same kind
        self._suggestions = {
            sid: s for sid, s in self._suggestions.items()
            if not (isinstance(s, kind) and s.state == SuggestionState.PROPOSED)
        }
        for suggestion in suggestions:
            self._suggestions[suggestion.id] = suggestion

    def get_suggestion(self, suggestion_id: str) -> Suggestion:
        try:
            return self._suggestions[suggestion_id]
        except KeyError:
            raise KeyError(f"Unknown suggestion: {suggestion_id}") from None

    # =========================================================================
    # DECISIONS
    # =========================================================================

    def apply_suggestion(
        self,
        suggestion_id: str,
        decision: Union[Decision, str],
        canonical_id: Optional[Any] = None
    ) -> ImportResult:
        """
        Confirm or dismiss a proposed suggestion.

        Dismissing only records the pair (or orphan) in the session exclusion
        set. Confirming a merge runs, in order:

        (a) re-parent the duplicate's children onto the canonical tag
        (b) delete the duplicate
        (c) upsert a merge rule duplicate -> canonical for this chat type
        (d) write one audit log per affected document

        A failure in (a) or (b) stops the merge and leaves the suggestion
        proposed. Failures in (c) or (d) are reported in the result; the
        merge itself stands. Steps (c) and (d) are skipped when both tags
        carry exactly the same name.

        Confirming an adoption sets the orphan's parent; nothing is deleted.

        Args:
            suggestion_id: Id of a suggestion from the latest proposal round
            decision: "confirm" or "dismiss"
            canonical_id: For merges, the tag to keep (default: the first tag
                of the pair)

        Returns:
            ImportResult counting rows written or deleted

        Raises:
            KeyError: If the suggestion id is unknown
            ValueError: If the suggestion is no longer proposed, the decision
                is invalid, or canonical_id is not part of the pair
        """
        suggestion = self.get_suggestion(suggestion_id)
        decision = Decision(decision)

        if suggestion.state != SuggestionState.PROPOSED:
            raise ValueError(f"Suggestion {suggestion_id} is already {suggestion.state.value}")

        if decision == Decision.DISMISS:
            if isinstance(suggestion, MergeSuggestion):
                self._dismissed_pairs.add(suggestion.key)
            else:
                self._dismissed_orphans.add(suggestion.orphan.id)
            suggestion.state = SuggestionState.DISMISSED
            logger.info(f"Dismissed suggestion {suggestion_id}")
            return ImportResult()

        if isinstance(suggestion, MergeSuggestion):
            return self._confirm_merge(suggestion, canonical_id)
        return self._confirm_adoption(suggestion)

    def _confirm_merge(self, suggestion: MergeSuggestion, canonical_id: Optional[Any]) -> ImportResult:
        if canonical_id is None or canonical_id == suggestion.tag_a.id:
            canonical, duplicate = suggestion.tag_a, suggestion.tag_b
        elif canonical_id == suggestion.tag_b.id:
            canonical, duplicate = suggestion.tag_b, suggestion.tag_a
        else:
            raise ValueError(f"canonical_id {canonical_id} is not part of suggestion {suggestion.id}")

        result = ImportResult()
        children = [t for t in self.tags if t.has_parent and t.parent_tag_id == duplicate.id]

        # (a) re-parent
        if children:
            rows = []
            for child in children:
                row = child.to_row()
                row["parent_tag_id"] = canonical.id
                rows.append(row)
            try:
                self.store.upsert(TAGS_TABLE, rows, on_conflict="id")
            except Exception as e:
                message = f'Merge "{duplicate.tag_name}" -> "{canonical.tag_name}": re-parenting children failed: {e}'
                logger.error(message, exc_info=True)
                result.errors.append(message)
                return result
            for child in children:
                child.parent_tag_id = canonical.id
            result.success_count += len(children)

        # (b) delete duplicate
        try:
            self.store.delete(TAGS_TABLE, [duplicate.id])
        except Exception as e:
            message = f'Merge "{duplicate.tag_name}" -> "{canonical.tag_name}": deleting duplicate failed: {e}'
            logger.error(message, exc_info=True)
            result.errors.append(message)
            return result
        result.success_count += 1

        self.tags = [t for t in self.tags if t.id != duplicate.id]
        suggestion.state = SuggestionState.CONFIRMED
        self._drop_stale(duplicate.id, keep=suggestion.id)
        logger.info(f'Merged tag "{duplicate.tag_name}" into "{canonical.tag_name}"')

        if duplicate.tag_name == canonical.tag_name:
            return result

        # (c) merge rule
        rule = TagMergeRule(
            source_tag=duplicate.tag_name,
            canonical_tag=canonical.tag_name,
            chat_type=self.chat_type,
            created_by=self.created_by,
        )
        try:
            self.store.upsert(MERGE_RULES_TABLE, [rule.to_row()], on_conflict=MERGE_RULES_CONFLICT_KEY)
            result.success_count += 1
        except Exception as e:
            message = f'Merge rule "{rule.source_tag}" -> "{rule.canonical_tag}" failed: {e}'
            logger.error(message, exc_info=True)
            result.errors.append(message)

        # (d) audit logs
        documents: List[Any] = []
        for tag in [duplicate] + children:
            if tag.document_id is not None and tag.document_id not in documents:
                documents.append(tag.document_id)
        logs = [
            TagModificationLog(
                document_id=document_id,
                original_tag_name=duplicate.tag_name,
                new_tag_name=canonical.tag_name,
                chat_type=self.chat_type,
                created_by=self.created_by,
            ).to_row()
            for document_id in documents
        ]
        if logs:
            try:
                self.store.upsert(MODIFICATION_LOGS_TABLE, logs, on_conflict=None)
                result.success_count += len(logs)
            except Exception as e:
                message = f'Audit log for merge "{duplicate.tag_name}" -> "{canonical.tag_name}" failed: {e}'
                logger.error(message, exc_info=True)
                result.errors.append(message)

        return result

    def _confirm_adoption(self, suggestion: AdoptionSuggestion) -> ImportResult:
        result = ImportResult()
        orphan, parent = suggestion.orphan, suggestion.parent

        row = orphan.to_row()
        row["parent_tag_id"] = parent.id
        try:
            self.store.upsert(TAGS_TABLE, [row], on_conflict="id")
        except Exception as e:
            message = f'Adoption of "{orphan.tag_name}" by "{parent.tag_name}" failed: {e}'
            logger.error(message, exc_info=True)
            result.errors.append(message)
            return result

        orphan.parent_tag_id = parent.id
        suggestion.state = SuggestionState.CONFIRMED
        result.success_count += 1
        logger.info(f'Tag "{orphan.tag_name}" adopted by "{parent.tag_name}"')
        return result

    def _drop_stale(self, deleted_id: Any, keep: str) -> None:
        # Open suggestions that reference a deleted tag can no longer be applied
        self._suggestions = {
            sid: s for sid, s in self._suggestions.items()
            if sid == keep or s.state != SuggestionState.PROPOSED or not s.involves(deleted_id)
        }
