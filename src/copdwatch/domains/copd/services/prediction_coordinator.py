"""Live risk monitoring for one patient at a time.

The coordinator binds to a single patient (a *session*), recomputes the risk
assessment on demand, enriches it with an AI narrative and live weather, and
publishes a ``CompletePrediction`` to every subscriber.

Refreshes are driven by the caller (on start, on a manual request); there is
no background timer. Any await can outlive the session that started it, so
results are checked against the current session before publishing, and a
refresh that finishes after a newer one has already published is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from copdwatch.domains.copd.connectors import (
    NarrativeEnrichment,
    PatientDataProvider,
    WeatherLookup,
)
from copdwatch.domains.copd.domain_logic.alerts import AnomalyAlertGenerator, RandomSource
from copdwatch.domains.copd.domain_logic.numeric import clamp, round_half_up
from copdwatch.domains.copd.domain_logic.patient_models import PatientSnapshot
from copdwatch.domains.copd.domain_logic.prediction_models import (
    CompletePrediction,
    NarrativeAnalysis,
    RiskAssessment,
    WeatherReport,
)
from copdwatch.domains.copd.domain_logic.risk_scorer import score_patient
from copdwatch.domains.copd.domain_logic.synthetic import SyntheticSeriesGenerator, day_labels
from copdwatch.domains.copd.enrichment.prompts import PromptCatalog, default_catalog

logger = logging.getLogger(__name__)

PredictionCallback = Callable[[CompletePrediction], None]
Fluctuation = Callable[[float, float], float]

BASE_CONFIDENCE = 85
SCORE_JITTER = 5.0
CONFIDENCE_JITTER = 10.0
MIN_HORIZON_HOURS = 24
HORIZON_SPREAD_HOURS = 48

# Keys passed to a caller-supplied translate function for the heatmap day labels.
DAY_LABEL_KEYS = ("days.d2", "days.d1", "days.today")


@dataclass
class _Session:
    patient_id: int
    snapshot: PatientSnapshot
    locale: str
    day_labels: tuple[str, str, str]


def no_fluctuation(value: float, spread: float) -> float:
    """Fluctuation function that leaves displayed values untouched."""
    return value


class PredictionCoordinator:
    """Stateful orchestrator for one patient's live risk monitoring.

    Usage::

        coordinator = PredictionCoordinator(provider, enricher, weather=weather)
        unsubscribe = coordinator.on_update(render)
        await coordinator.start(42, locale="fr")
        await coordinator.refresh()
        coordinator.stop()
    """

    def __init__(
        self,
        provider: PatientDataProvider,
        enricher: NarrativeEnrichment,
        *,
        weather: WeatherLookup | None = None,
        scorer: Callable[..., RiskAssessment] = score_patient,
        alert_generator: AnomalyAlertGenerator | None = None,
        series_generator: SyntheticSeriesGenerator | None = None,
        fluctuation: Fluctuation | None = None,
        rng: RandomSource | None = None,
        clock: Callable[[], datetime] | None = None,
        enrichment_timeout: float = 30.0,
        fallbacks: PromptCatalog | None = None,
    ) -> None:
        self._provider = provider
        self._enricher = enricher
        self._weather = weather
        self._scorer = scorer
        self._rng = rng or random.Random()
        self._alerts = alert_generator or AnomalyAlertGenerator(self._rng)
        self._series = series_generator or SyntheticSeriesGenerator(self._rng)
        self._fluctuation = fluctuation or self._random_fluctuation
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._enrichment_timeout = enrichment_timeout
        self._fallbacks = fallbacks or default_catalog()

        self._session: _Session | None = None
        self._last_prediction: CompletePrediction | None = None
        self._subscribers: list[PredictionCallback] = []
        self._start_seq = 0
        self._refresh_seq = 0
        self._published_seq = 0

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._session is not None

    @property
    def active_patient_id(self) -> int | None:
        return self._session.patient_id if self._session else None

    @property
    def locale(self) -> str | None:
        return self._session.locale if self._session else None

    @property
    def last_prediction(self) -> CompletePrediction | None:
        return self._last_prediction

    async def start(
        self,
        patient_id: int,
        locale: str = "en",
        translate: Callable[[str], str] | None = None,
    ) -> None:
        """Bind to ``patient_id``, discarding any previous session.

        An unknown patient (or a failing provider) leaves the coordinator
        idle; this is logged, not raised.
        """
        self.stop()
        token = self._start_seq

        try:
            snapshot = await self._provider.get_snapshot(patient_id)
        except Exception:
            logger.exception("Failed to load patient %s; monitoring not started", patient_id)
            return

        if token != self._start_seq:
            logger.debug("start(%s) superseded while loading the patient", patient_id)
            return
        if snapshot is None:
            logger.warning("Patient %s not found; monitoring not started", patient_id)
            return

        if translate is not None:
            labels = tuple(translate(key) for key in DAY_LABEL_KEYS)
        else:
            labels = day_labels(locale)

        self._session = _Session(
            patient_id=patient_id,
            snapshot=snapshot,
            locale=locale,
            day_labels=labels,  # type: ignore[arg-type]
        )
        self._last_prediction = None
        logger.info("Monitoring started for patient %s (locale=%s)", patient_id, locale)

    def stop(self) -> None:
        """Return to idle. In-flight refreshes finish but are never published."""
        self._start_seq += 1
        if self._session is not None:
            logger.info("Monitoring stopped for patient %s", self._session.patient_id)
        self._session = None
        self._last_prediction = None

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def on_update(self, callback: PredictionCallback) -> Callable[[], None]:
        """Subscribe to predictions; the current one (if any) is replayed immediately."""
        self._subscribers.append(callback)
        if self._last_prediction is not None:
            self._notify(callback, self._last_prediction)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @staticmethod
    def _notify(callback: PredictionCallback, prediction: CompletePrediction) -> None:
        try:
            callback(prediction)
        except Exception:
            logger.exception("Prediction subscriber %r failed", callback)

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Recompute and publish the prediction for the active session.

        No-op when idle. Enrichment failures degrade the prediction (``error``
        is set) instead of raising.
        """
        session = self._session
        if session is None:
            logger.debug("refresh() called while idle; ignoring")
            return

        self._refresh_seq += 1
        seq = self._refresh_seq

        snapshot = await self._reload_snapshot(session)
        if self._session is not session:
            logger.debug("Discarding refresh %d: session changed during reload", seq)
            return

        snapshot, weather = await self._apply_weather(snapshot, session.locale)
        if self._session is not session:
            logger.debug("Discarding refresh %d: session changed during weather lookup", seq)
            return

        now = self._clock()
        assessment = self._scorer(snapshot, now=now)
        narrative = await self._enrich(snapshot, assessment, session.locale)
        if self._session is not session:
            logger.info(
                "Discarding stale prediction for patient %s (session changed)",
                session.patient_id,
            )
            return

        prediction = self._assemble(session, snapshot, assessment, narrative, weather, now)
        self._publish(prediction, seq)

    async def _reload_snapshot(self, session: _Session) -> PatientSnapshot:
        try:
            fresh = await self._provider.get_snapshot(session.patient_id)
        except Exception:
            logger.warning(
                "Could not reload patient %s; scoring the cached snapshot",
                session.patient_id,
                exc_info=True,
            )
            return session.snapshot
        if fresh is None:
            logger.warning("Patient %s disappeared; scoring the cached snapshot", session.patient_id)
            return session.snapshot
        session.snapshot = fresh
        return fresh

    async def _apply_weather(
        self, snapshot: PatientSnapshot, locale: str
    ) -> tuple[PatientSnapshot, WeatherReport | None]:
        if self._weather is None or not snapshot.has_location:
            return snapshot, None
        try:
            report = await self._weather.get_weather(snapshot.city, snapshot.country, locale)
        except Exception as exc:
            logger.warning(
                "Weather lookup failed for %s, %s: %s; using stored environment",
                snapshot.city,
                snapshot.country,
                exc,
            )
            return snapshot, None
        return snapshot.with_weather(report), report

    async def _enrich(
        self, snapshot: PatientSnapshot, assessment: RiskAssessment, locale: str
    ) -> NarrativeAnalysis:
        try:
            return await asyncio.wait_for(
                self._enricher.analyze(
                    snapshot,
                    assessment.score,
                    assessment.level,
                    locale,
                    adherence=assessment.breakdown.adherence_percent,
                ),
                timeout=self._enrichment_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Narrative enrichment timed out after %.1fs for patient %s",
                self._enrichment_timeout,
                snapshot.id,
            )
            return self._fallbacks.fallback_narrative(
                locale, self._fallbacks.error_message("prediction_timeout")
            )
        except Exception:
            logger.exception("Narrative enrichment failed for patient %s", snapshot.id)
            return self._fallbacks.fallback_narrative(
                locale, self._fallbacks.error_message("prediction_failed")
            )

    def _random_fluctuation(self, value: float, spread: float) -> float:
        return value + (self._rng.random() - 0.5) * spread

    def _assemble(
        self,
        session: _Session,
        snapshot: PatientSnapshot,
        assessment: RiskAssessment,
        narrative: NarrativeAnalysis,
        weather: WeatherReport | None,
        now: datetime,
    ) -> CompletePrediction:
        displayed_score = round_half_up(clamp(self._fluctuation(assessment.score, SCORE_JITTER)))
        confidence = round_half_up(clamp(self._fluctuation(BASE_CONFIDENCE, CONFIDENCE_JITTER)))

        return CompletePrediction(
            patient_id=session.patient_id,
            risk_score=displayed_score,
            risk_level=assessment.level,
            confidence=confidence,
            time_horizon_hours=MIN_HORIZON_HOURS + round_half_up(self._rng.random() * HORIZON_SPREAD_HOURS),
            summary=narrative.summary,
            contributing_factors=list(narrative.contributing_factors),
            alerts=self._alerts.generate(assessment.level, snapshot, now),
            recommendations=list(narrative.recommendations),
            activity_series=self._series.activity_series(now),
            heatmap_series=self._series.heatmap_series(assessment.level, session.day_labels),
            last_update=now,
            weather=weather,
            error=narrative.error,
        )

    def _publish(self, prediction: CompletePrediction, seq: int) -> None:
        if seq <= self._published_seq:
            logger.debug(
                "Discarding refresh %d: refresh %d already published", seq, self._published_seq
            )
            return
        self._published_seq = seq
        self._last_prediction = prediction
        logger.info(
            "Published prediction for patient %s: score=%d level=%s alerts=%d%s",
            prediction.patient_id,
            prediction.risk_score,
            prediction.risk_level,
            len(prediction.alerts),
            " (degraded)" if prediction.error else "",
        )
        for callback in list(self._subscribers):
            self._notify(callback, prediction)
