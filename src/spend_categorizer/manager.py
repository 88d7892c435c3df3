from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone

from spend_categorizer.classifiers.base import Matcher, MatchContext
from spend_categorizer.classifiers.exact import ExactMatcher
from spend_categorizer.classifiers.fuzzy import FuzzyMatcher
from spend_categorizer.classifiers.keywords import (
    DEFAULT_KEYWORD_RULES,
    KeywordRuleMatcher,
    learn_keyword_from_transaction,
    merge_keyword_rules,
)
from spend_categorizer.classifiers.model import CategoryModel, ModelMatcher
from spend_categorizer.classifiers.patterns import PatternMatcher
from spend_categorizer.classifiers.tfidf import TfidfMatcher, vocabulary_size
from spend_categorizer.core import settings
from spend_categorizer.diagnostics import (
    PHASE_NAMES,
    CategorizationDebugInfo,
    ExactMatchStats,
    ModelInfo,
    Phase2Info,
    Phase3Info,
    PhaseDebugResult,
    TfidfStats,
)
from spend_categorizer.domain.normalize import normalize_description
from spend_categorizer.domain.taxonomy import (
    DEFAULT_CATEGORIES,
    TaxonomyRevision,
    copy_taxonomy,
    is_valid_category,
    is_valid_subcategory,
    merge_categories_from_file,
)
from spend_categorizer.logger import get_logger
from spend_categorizer.models import (
    CategorySuggestion,
    CategoryTaxonomy,
    KeywordRule,
    ModelMetrics,
    TrainingConfig,
    Transaction,
)

logger = get_logger(__name__)

VALID_PHASES = frozenset({1, 2, 3})


def apply_suggestion(transaction: Transaction, suggestion: CategorySuggestion) -> Transaction:
    """Return a new transaction carrying the suggestion; the source is left untouched."""
    # A stale subcategory must not outlive the category it belonged to
    return transaction.model_copy(update={
        "category": suggestion.category,
        "subcategory": suggestion.subcategory or None,
        "confidence": max(0.0, min(1.0, suggestion.confidence / 100)),
        "original_category": suggestion.category,
        "is_manually_edited": False,
    })


class CategorizationEngine:
    def __init__(
        self,
        model: CategoryModel | None = None,
        taxonomy: Mapping[str, list[str]] | None = None,
        custom_rules: Sequence[KeywordRule] | None = None,
        validate_taxonomy: bool | None = None,
        fuzzy_threshold: float | None = None,
        tfidf_threshold: float | None = None,
    ):
        self.model = model if model is not None else CategoryModel()
        self.taxonomy: CategoryTaxonomy = copy_taxonomy(taxonomy if taxonomy is not None else DEFAULT_CATEGORIES)
        self.custom_rules: list[KeywordRule] = list(custom_rules or [])
        if validate_taxonomy is None:
            validate_taxonomy = settings.get_env_bool("VALIDATE_TAXONOMY")
        self.validate_taxonomy = validate_taxonomy

        self.fuzzy_matcher = FuzzyMatcher(threshold=fuzzy_threshold)
        self.tfidf_matcher = TfidfMatcher(threshold=tfidf_threshold)

        # Fixed attempt order: phase 1, then phase 2 sub-methods, then phase 3
        self.matchers: list[Matcher] = [
            ExactMatcher(),
            KeywordRuleMatcher(),
            self.fuzzy_matcher,
            self.tfidf_matcher,
            PatternMatcher(),
            ModelMatcher(self.model),
        ]

    def select_matchers(
        self,
        enabled_phases: Iterable[int] | None = None,
        phase2_methods: Iterable[str] | None = None,
    ) -> list[Matcher]:
        phases = set(enabled_phases) if enabled_phases is not None else set(settings.get_env_phases())
        methods = set(phase2_methods) if phase2_methods is not None else set(settings.get_env_phase2_methods())

        unknown_phases = phases - VALID_PHASES
        if unknown_phases:
            raise ValueError(f"Unknown phases: {sorted(unknown_phases)}")
        unknown_methods = methods - set(settings.ALL_PHASE2_METHODS)
        if unknown_methods:
            raise ValueError(f"Unknown phase 2 methods: {sorted(unknown_methods)}")

        return [
            matcher for matcher in self.matchers
            if matcher.phase in phases and (matcher.phase != 2 or matcher.name in methods)
        ]

    def build_context(self, transactions: Sequence[Transaction]) -> MatchContext:
        return MatchContext.from_batch(transactions, self.taxonomy, self.custom_rules)

    def _accepts(self, suggestion: CategorySuggestion) -> bool:
        if not self.validate_taxonomy:
            return True
        if not is_valid_category(suggestion.category, self.taxonomy):
            return False
        if suggestion.subcategory and not is_valid_subcategory(
            suggestion.category, suggestion.subcategory, self.taxonomy
        ):
            return False
        return True

    async def _attempt(
        self,
        matcher: Matcher,
        description: str,
        context: MatchContext,
    ) -> CategorySuggestion | None:
        if matcher.phase != 3:
            return await matcher.match(description, context)
        try:
            return await matcher.match(description, context)
        except Exception:
            logger.exception("[PHASE3] Prediction failed for '%s'", description[:50])
            return None

    async def suggest(
        self,
        transaction: Transaction,
        matchers: Sequence[Matcher],
        context: MatchContext,
    ) -> CategorySuggestion | None:
        description = transaction.description
        local = context.for_transaction(transaction)
        for matcher in matchers:
            if not matcher.is_ready():
                logger.debug("[CATEGORIZE] Skipping %s: not ready", matcher.name)
                continue

            suggestion = await self._attempt(matcher, description, local)
            if suggestion is None:
                continue
            if not self._accepts(suggestion):
                logger.debug(
                    "[CATEGORIZE] %s suggested '%s' outside the taxonomy; ignoring",
                    matcher.name,
                    suggestion.category,
                )
                continue

            logger.debug(
                "[CATEGORIZE] %s matched '%s' -> '%s' (confidence: %.0f)",
                matcher.name,
                description[:50],
                suggestion.category,
                suggestion.confidence,
            )
            return suggestion
        return None

    async def run_categorization(
        self,
        transactions: Sequence[Transaction],
        enabled_phases: Iterable[int] | None = None,
        phase2_methods: Iterable[str] | None = None,
    ) -> list[Transaction]:
        """Categorize every uncategorized transaction of the batch.

        Transactions that already carry a category form the historical
        reference set for the run; they are returned unchanged, as are those
        no phase could place. The result has the input's length and order.
        """
        snapshot = list(transactions)
        matchers = self.select_matchers(enabled_phases, phase2_methods)
        context = self.build_context(snapshot)

        results: list[Transaction] = []
        categorized = 0
        pending = 0
        for transaction in snapshot:
            if transaction.is_categorized:
                results.append(transaction)
                continue
            pending += 1
            suggestion = await self.suggest(transaction, matchers, context)
            if suggestion is None:
                results.append(transaction)
                continue
            categorized += 1
            results.append(apply_suggestion(transaction, suggestion))

        logger.info(
            "[CATEGORIZE] Run complete. Categorized %s of %s uncategorized (history: %s, matchers: %s)",
            categorized,
            pending,
            len(context.history),
            ", ".join(m.name for m in matchers) or "none",
        )
        return results

    async def debug_categorization(
        self,
        transactions: Sequence[Transaction],
        enabled_phases: Iterable[int] | None = None,
        phase2_methods: Iterable[str] | None = None,
    ) -> list[CategorizationDebugInfo]:
        snapshot = list(transactions)
        matchers = self.select_matchers(enabled_phases, phase2_methods)
        context = self.build_context(snapshot)
        traces: list[CategorizationDebugInfo] = []

        for transaction in snapshot:
            trace = CategorizationDebugInfo(
                transaction_id=transaction.id,
                description=transaction.description,
                amount=transaction.amount,
                timestamp=datetime.now(timezone.utc),
            )
            if transaction.is_categorized:
                trace.final_category = transaction.category
                trace.final_subcategory = transaction.subcategory
                trace.final_confidence = transaction.confidence or 0.0
                traces.append(trace)
                continue

            local = context.for_transaction(transaction)
            for matcher in matchers:
                result = PhaseDebugResult(
                    phase=matcher.phase,
                    phase_name=PHASE_NAMES[matcher.phase],
                    method=matcher.method,
                )
                if not matcher.is_ready():
                    result.skipped = True
                    trace.phase_results.append(result)
                    continue

                suggestion = await self._attempt(matcher, transaction.description, local)
                result.details = matcher.explain(transaction.description, local)
                if suggestion is not None and self._accepts(suggestion):
                    result.matched = True
                    result.category = suggestion.category
                    result.subcategory = suggestion.subcategory
                    result.confidence = suggestion.confidence
                    result.reason = suggestion.reason
                    trace.phase_results.append(result)
                    trace.final_category = suggestion.category
                    trace.final_subcategory = suggestion.subcategory
                    trace.final_confidence = suggestion.confidence / 100
                    trace.final_method = suggestion.method
                    break
                trace.phase_results.append(result)

            traces.append(trace)
        return traces

    def model_info(self, transactions: Sequence[Transaction] = ()) -> ModelInfo:
        history = self.build_context(transactions).history
        return ModelInfo(
            phase1=ExactMatchStats(
                total_transactions=len(history),
                unique_descriptions=len({normalize_description(t.description) for t in history}),
                manually_edited=sum(1 for t in history if t.is_manually_edited),
            ),
            phase2=Phase2Info(
                keyword_rules=list(self.custom_rules),
                default_rule_count=len(DEFAULT_KEYWORD_RULES),
                fuzzy_threshold=self.fuzzy_matcher.effective_threshold,
                tfidf_threshold=self.tfidf_matcher.effective_threshold,
                tfidf_stats=TfidfStats(
                    vocabulary_size=vocabulary_size(history),
                    corpus_size=len(history),
                ),
            ),
            phase3=Phase3Info(
                is_trained=self.model.is_trained(),
                metrics=self.model.metrics,
                architecture=self.model.architecture(),
            ),
        )

    async def train_model(
        self,
        transactions: Sequence[Transaction],
        config: TrainingConfig | None = None,
    ) -> ModelMetrics:
        labeled = [t for t in transactions if t.is_categorized]
        return await self.model.train(labeled, config)

    def is_model_trained(self) -> bool:
        return self.model.is_trained()

    def get_model_metrics(self) -> ModelMetrics:
        return self.model.get_metrics()

    async def reset_model(self) -> None:
        await self.model.reset()
        logger.info("[PHASE3] Model reset.")

    def learn_rule(self, transaction: Transaction) -> list[KeywordRule]:
        learned = learn_keyword_from_transaction(transaction)
        if learned is None:
            return list(self.custom_rules)
        self.custom_rules = merge_keyword_rules(self.custom_rules, [learned])
        logger.info(
            "[RULES] Learned keywords %s for '%s'",
            learned.keywords,
            learned.category,
        )
        return list(self.custom_rules)

    def update_taxonomy(self, incoming: Mapping[str, list[str]]) -> TaxonomyRevision:
        revision = merge_categories_from_file(self.taxonomy, incoming)
        self.taxonomy = revision.taxonomy
        if not revision.diff.is_empty:
            logger.info(
                "[TAXONOMY] Added categories %s and subcategories %s",
                revision.diff.added_categories,
                revision.diff.added_subcategories,
            )
        return revision
