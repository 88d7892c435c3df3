import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Literal

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.linear_model import SGDClassifier
from sklearn.metrics import accuracy_score, log_loss
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline

from spend_categorizer.core import settings
from spend_categorizer.domain.normalize import normalize_for_matching
from spend_categorizer.errors import InsufficientTrainingDataError, ModelNotTrainedError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import CategorySuggestion, ModelMetrics, TrainingConfig, Transaction

from .base import Matcher, MatchContext

logger = get_logger(__name__)

ModelState = Literal["uninitialized", "initialized", "trained"]

NGRAM_RANGE = (3, 5)
MIN_TRAINING_SAMPLES = 2
MIN_CATEGORIES = 2


def _build_pipeline(random_state: int) -> Pipeline:
    return Pipeline([
        ('tfidf', TfidfVectorizer(analyzer='char_wb', ngram_range=NGRAM_RANGE, min_df=1)),
        ('clf', SGDClassifier(loss='log_loss', random_state=random_state))
    ])


class CategoryModel:
    """Trainable description -> category classifier.

    The caller owns the instance and hands it to the engine. Training takes the
    model's lock exclusively; predictions take the same lock, so inference is
    serialized against training and against each other.
    """

    def __init__(self, threshold: float | None = None, random_state: int = 42):
        self.threshold = threshold
        self.random_state = random_state
        self.state: ModelState = "uninitialized"
        self.pipeline: Pipeline | None = None
        self.metrics: ModelMetrics | None = None
        self._lock = asyncio.Lock()

    def _initialize(self) -> None:
        self.pipeline = _build_pipeline(self.random_state)
        self.metrics = None
        self.state = "initialized"

    async def initialize(self) -> None:
        async with self._lock:
            self._initialize()

    async def reset(self) -> None:
        # Waits for an in-flight training run, which would otherwise land afterwards
        async with self._lock:
            self.pipeline = None
            self.metrics = None
            self.state = "uninitialized"

    def is_trained(self) -> bool:
        return self.state == "trained" and self.pipeline is not None

    def get_metrics(self) -> ModelMetrics:
        if self.metrics is None:
            raise ModelNotTrainedError("Model has not been trained yet")
        return self.metrics.model_copy()

    @property
    def categories(self) -> list[str]:
        if not self.is_trained() or self.pipeline is None:
            return []
        return [str(c) for c in self.pipeline.named_steps["clf"].classes_]

    def architecture(self) -> dict[str, Any]:
        vocabulary_size = 0
        if self.is_trained() and self.pipeline is not None:
            vocabulary_size = len(self.pipeline.named_steps["tfidf"].vocabulary_)
        return {
            "vocabulary_size": vocabulary_size,
            "ngram_range": list(NGRAM_RANGE),
            "layers": ["TfidfVectorizer(char_wb)", "SGDClassifier(log_loss)"],
        }

    @staticmethod
    def _prepare_samples(transactions: Sequence[Transaction]) -> tuple[list[str], list[str]]:
        descriptions: list[str] = []
        labels: list[str] = []
        for transaction in transactions:
            if not transaction.is_categorized:
                continue
            text = normalize_for_matching(transaction.description)
            if not text:
                continue
            descriptions.append(text)
            labels.append(transaction.category or "")
        return descriptions, labels

    def _fit(
        self,
        descriptions: list[str],
        labels: list[str],
        config: TrainingConfig,
    ) -> tuple[Pipeline, ModelMetrics]:
        total = len(descriptions)
        validation_count = int(total * config.validation_split)
        if validation_count > 0 and total - validation_count >= 1:
            x_train, x_val, y_train, y_val = train_test_split(
                descriptions,
                labels,
                test_size=validation_count,
                random_state=self.random_state,
                shuffle=True,
            )
        else:
            validation_count = 0
            x_train, x_val, y_train, y_val = descriptions, [], labels, []

        pipeline = _build_pipeline(self.random_state)
        vectorizer: TfidfVectorizer = pipeline.named_steps["tfidf"]
        classifier: SGDClassifier = pipeline.named_steps["clf"]

        try:
            features = vectorizer.fit_transform(x_train)
        except ValueError as exc:
            raise InsufficientTrainingDataError(f"Training descriptions produced no features: {exc}") from exc

        classes = np.asarray(sorted(set(labels)))
        targets = np.asarray(y_train)
        rng = np.random.default_rng(self.random_state)

        for _ in range(config.epochs):
            order = rng.permutation(features.shape[0])
            for start in range(0, len(order), config.batch_size):
                batch = order[start:start + config.batch_size]
                classifier.partial_fit(features[batch], targets[batch], classes=classes)

        x_eval, y_eval = (x_val, y_val) if validation_count else (x_train, y_train)
        probabilities = pipeline.predict_proba(x_eval)
        metrics = ModelMetrics(
            accuracy=float(accuracy_score(y_eval, pipeline.predict(x_eval))),
            loss=float(log_loss(y_eval, probabilities, labels=classifier.classes_)),
            training_samples=len(x_train),
            validation_samples=validation_count,
            last_trained_at=datetime.now(timezone.utc),
        )
        return pipeline, metrics

    async def train(
        self,
        transactions: Sequence[Transaction],
        config: TrainingConfig | None = None,
    ) -> ModelMetrics:
        config = config or TrainingConfig(
            epochs=settings.TRAINING_EPOCHS,
            batch_size=settings.TRAINING_BATCH_SIZE,
            validation_split=settings.VALIDATION_SPLIT,
        )
        descriptions, labels = self._prepare_samples(transactions)
        if len(descriptions) < MIN_TRAINING_SAMPLES or len(set(labels)) < MIN_CATEGORIES:
            raise InsufficientTrainingDataError(
                "Insufficient training data. Need at least "
                f"{MIN_CATEGORIES} different categories, got {len(set(labels))} "
                f"across {len(descriptions)} labeled transactions."
            )

        async with self._lock:
            if self.state == "uninitialized":
                self._initialize()
            logger.info(
                "[TRAIN] Fitting classifier on %s samples (%s categories, epochs=%s, batch_size=%s)",
                len(descriptions),
                len(set(labels)),
                config.epochs,
                config.batch_size,
            )
            pipeline, metrics = await asyncio.to_thread(self._fit, descriptions, labels, config)
            self.pipeline = pipeline
            self.metrics = metrics
            self.state = "trained"

        logger.info(
            "[TRAIN] Complete. accuracy=%.3f loss=%.3f train=%s validation=%s",
            metrics.accuracy,
            metrics.loss,
            metrics.training_samples,
            metrics.validation_samples,
        )
        return metrics.model_copy()

    def _predict_proba(self, pipeline: Pipeline, description: str) -> list[tuple[str, float]]:
        probabilities = pipeline.predict_proba([normalize_for_matching(description)])[0]
        classes = pipeline.named_steps["clf"].classes_
        ranked = sorted(zip(classes, probabilities), key=lambda item: -item[1])
        return [(str(category), float(probability)) for category, probability in ranked]

    async def class_probabilities(self, description: str) -> list[tuple[str, float]]:
        async with self._lock:
            pipeline = self.pipeline
            if self.state != "trained" or pipeline is None:
                raise ModelNotTrainedError("Model has not been trained yet")
            return await asyncio.to_thread(self._predict_proba, pipeline, description)

    async def predict(self, description: str) -> CategorySuggestion | None:
        if not self.is_trained():
            raise ModelNotTrainedError("Model has not been trained yet")
        if not description or not normalize_for_matching(description):
            return None

        ranked = await self.class_probabilities(description)
        category, probability = ranked[0]
        confidence = round(probability * 100)
        threshold = self.threshold if self.threshold is not None else settings.ml_threshold()
        if confidence < threshold:
            logger.debug(
                "[PHASE3] Prediction '%s' below threshold (%s < %s)",
                category,
                confidence,
                threshold,
            )
            return None

        samples = self.metrics.training_samples if self.metrics else 0
        return CategorySuggestion(
            category=category,
            confidence=max(0, min(100, confidence)),
            reason=f"ML prediction with {confidence}% confidence based on {samples} training samples",
            method="ml-classifier",
        )


class ModelMatcher(Matcher):
    phase = 3
    name = "ml"
    method = "ml-classifier"

    def __init__(self, model: CategoryModel):
        self.model = model

    def is_ready(self) -> bool:
        return self.model.is_trained()

    async def match(self, description: str, context: MatchContext) -> CategorySuggestion | None:
        return await self.model.predict(description)

    def explain(self, description: str, context: MatchContext) -> dict[str, Any]:
        return {
            "model_metrics": self.model.metrics.model_dump() if self.model.metrics else None,
            "threshold": self.model.threshold if self.model.threshold is not None else settings.ml_threshold(),
            "categories": self.model.categories,
        }
