"""Statistical mood classifier state: parameters, corpus, training loop.

Concurrency model
-----------------
* **Inference** reads an immutable :class:`_Snapshot` through a single
  attribute read and never takes a lock.  Published networks are never
  mutated again.
* **Training** runs on a single-worker thread pool, so runs never overlap.
  A run trains a deep copy of the current network (or a fresh one at
  bootstrap) and publishes the result by swapping the snapshot reference
  under ``_lock``.
* **Supersession**: every retrain request bumps ``_generation``.  A run
  whose generation is no longer current stops at the next epoch boundary
  and its parameters are discarded.
"""

from __future__ import annotations

import copy
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Sequence

import numpy as np
import structlog
import torch
from torch import nn, optim

from neurofit_monitor.classification.features import (
    FEATURE_NAMES,
    FEATURE_STATS,
    FeatureStat,
    normalize_reading,
    stats_from_dict,
    stats_to_dict,
)
from neurofit_monitor.classification.network import MoodNetwork, NetworkConfig
from neurofit_monitor.classification.persistence import ParameterStore
from neurofit_monitor.classification.synthetic import generate_corpus
from neurofit_monitor.exceptions import CheckpointError, ModelNotReadyError
from neurofit_monitor.models import MOOD_LABELS, MoodLabel, Reading

logger = structlog.get_logger(__name__)

CHECKPOINT_FORMAT = 1
VALIDATION_FRACTION = 0.2

SOURCE_SYNTHETIC = "synthetic"
SOURCE_CORRECTION = "correction"


@dataclass(frozen=True)
class _Snapshot:
    network: MoodNetwork
    version: int
    trained_at: datetime


@dataclass(frozen=True)
class TrainingReport:
    """Outcome of one training run."""

    generation: int
    reason: str
    samples: int
    epochs_run: int
    train_loss: float
    train_accuracy: float
    val_loss: float | None
    val_accuracy: float | None
    superseded: bool = False


class ModelState:
    """Owns the network parameters, feature statistics and training corpus.

    Parameters
    ----------
    store
        Checkpoint persistence; ``None`` disables save / restore.
    model_id
        Opaque key under which checkpoints are stored.
    config
        Network architecture and optimiser settings.
    synthetic_samples
        Corpus size generated when bootstrapping.
    retrain_every
        Accepted corrections between automatic retrains.
    min_training_samples
        Corpus size below which retrain requests are ignored.
    seed
        Seed for corpus generation, splits and weight initialisation.
    """

    def __init__(
        self,
        store: ParameterStore | None = None,
        *,
        model_id: str = "mood-classifier",
        config: NetworkConfig | None = None,
        synthetic_samples: int = 1000,
        retrain_every: int = 50,
        min_training_samples: int = 100,
        seed: int | None = None,
        stats: Sequence[FeatureStat] = FEATURE_STATS,
    ) -> None:
        self._store = store
        self._model_id = model_id
        self._config = config or NetworkConfig(
            input_size=len(stats), output_size=len(MOOD_LABELS)
        )
        self._synthetic_samples = synthetic_samples
        self._retrain_every = retrain_every
        self._min_training_samples = min_training_samples
        self._seed = seed
        self._stats = tuple(stats)

        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()
        self._snapshot: _Snapshot | None = None
        self._generation = 0
        self._pending_jobs = 0
        self._last_future: Future | None = None
        self._last_report: TrainingReport | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mood-train")

        # Training corpus (normalised features + target index + source tag)
        self._corpus_x: list[np.ndarray] = []
        self._corpus_y: list[int] = []
        self._corpus_src: list[str] = []
        self._corrections = 0

    # ── Status ────────────────────────────────────────────────

    def is_ready(self) -> bool:
        return self._snapshot is not None

    def is_training(self) -> bool:
        return self._pending_jobs > 0

    @property
    def stats(self) -> tuple[FeatureStat, ...]:
        return self._stats

    @property
    def correction_count(self) -> int:
        return self._corrections

    @property
    def corpus_size(self) -> int:
        return len(self._corpus_y)

    @property
    def version(self) -> int:
        snap = self._snapshot
        return snap.version if snap else 0

    @property
    def last_report(self) -> TrainingReport | None:
        return self._last_report

    def info(self) -> dict[str, Any]:
        snap = self._snapshot
        sources = {
            src: self._corpus_src.count(src) for src in (SOURCE_SYNTHETIC, SOURCE_CORRECTION)
        }
        return {
            "model_id": self._model_id,
            "ready": snap is not None,
            "training": self.is_training(),
            "version": snap.version if snap else 0,
            "trained_at": snap.trained_at.isoformat() if snap else None,
            "labels": [label.value for label in MOOD_LABELS],
            "features": [s.name for s in self._stats],
            "config": self._config.to_dict(),
            "corpus_size": self.corpus_size,
            "corpus_sources": sources,
            "corrections": self._corrections,
        }

    # ── Lifecycle ─────────────────────────────────────────────

    def start(
        self,
        *,
        wait: bool = False,
        restore: bool = True,
        bootstrap: bool = True,
    ) -> Future | None:
        """Restore stored parameters, or bootstrap from a synthetic corpus.

        Returns the bootstrap training future (``None`` when restored or
        when *bootstrap* is off).  With ``wait=True`` the call blocks until
        bootstrap training ends.
        """
        if restore and self._restore():
            return None
        if not bootstrap:
            logger.info("model.bootstrap_skipped", model_id=self._model_id)
            return None

        corpus = generate_corpus(self._synthetic_samples, rng=self._rng, stats=self._stats)
        with self._lock:
            self._corpus_x.extend(corpus.features)
            self._corpus_y.extend(int(t) for t in corpus.targets)
            self._corpus_src.extend([SOURCE_SYNTHETIC] * len(corpus))
        logger.info("model.synthetic_corpus_generated", samples=len(corpus))

        future = self.request_retrain(reason="bootstrap")
        if wait and future is not None:
            future.result()
        return future

    def wait_idle(self, timeout: float | None = None) -> TrainingReport | None:
        """Block until the most recently requested run has finished."""
        future = self._last_future
        if future is not None:
            future.result(timeout=timeout)
        return self._last_report

    def close(self) -> None:
        with self._lock:
            self._generation += 1  # supersede anything in flight
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ── Inference ─────────────────────────────────────────────

    def normalize(self, reading: Reading) -> np.ndarray:
        return normalize_reading(reading, self._stats)

    def predict_proba(self, features: np.ndarray) -> np.ndarray:
        """Probability vector (float64, sums to 1) for one feature vector."""
        snap = self._snapshot
        if snap is None:
            raise ModelNotReadyError("mood network has not been trained yet")
        x = torch.as_tensor(np.asarray(features, dtype=np.float32)).reshape(1, -1)
        probs = snap.network.predict_proba(x)[0].double().numpy()
        return probs / probs.sum()

    # ── Corpus & corrections ──────────────────────────────────

    def add_sample(
        self,
        features: np.ndarray,
        label: MoodLabel,
        source: str = SOURCE_CORRECTION,
    ) -> Future | None:
        """Append one labelled sample.

        Corrections are counted; every ``retrain_every``-th correction
        requests a retrain, whose future is returned.
        """
        with self._lock:
            self._corpus_x.append(np.asarray(features, dtype=np.float32))
            self._corpus_y.append(MOOD_LABELS.index(label))
            self._corpus_src.append(source)
            if source == SOURCE_CORRECTION:
                self._corrections += 1
            due = (
                source == SOURCE_CORRECTION
                and self._corrections % self._retrain_every == 0
            )

        logger.debug("model.sample_added", label=label.value, source=source, corrections=self._corrections)
        if due:
            return self.request_retrain(reason="corrections")
        return None

    # ── Training ──────────────────────────────────────────────

    def request_retrain(self, reason: str = "manual") -> Future | None:
        """Queue a training run on the current corpus.

        Any run still queued or in progress is superseded.
        """
        with self._lock:
            if len(self._corpus_y) < self._min_training_samples:
                logger.info(
                    "model.retrain_skipped",
                    reason=reason,
                    corpus_size=len(self._corpus_y),
                    minimum=self._min_training_samples,
                )
                return None
            self._generation += 1
            generation = self._generation
            x = np.stack(self._corpus_x).astype(np.float32)
            y = np.asarray(self._corpus_y, dtype=np.int64)
            self._pending_jobs += 1

        logger.info("model.retrain_requested", reason=reason, generation=generation, samples=len(y))
        future = self._executor.submit(self._train_job, generation, x, y, reason)
        self._last_future = future
        return future

    def _train_job(
        self, generation: int, x: np.ndarray, y: np.ndarray, reason: str
    ) -> TrainingReport | None:
        try:
            if generation != self._generation:
                logger.info("model.training_superseded", generation=generation, stage="queued")
                return None

            if self._seed is not None:
                torch.manual_seed(self._seed + generation)

            base = self._snapshot
            network = copy.deepcopy(base.network) if base else MoodNetwork(self._config)
            report = self._fit(network, x, y, generation, reason)
            self._last_report = report
            if report.superseded:
                return report

            with self._lock:
                if generation != self._generation:
                    logger.info("model.training_superseded", generation=generation, stage="publish")
                    return report
                network.eval()
                version = (self._snapshot.version if self._snapshot else 0) + 1
                self._snapshot = _Snapshot(network, version, datetime.utcnow())

            logger.info(
                "model.published",
                version=version,
                reason=reason,
                val_accuracy=report.val_accuracy,
            )
            self._persist()
            return report
        except Exception:
            logger.exception("model.training_failed", generation=generation, reason=reason)
            return None
        finally:
            with self._lock:
                self._pending_jobs -= 1

    def _fit(
        self,
        network: MoodNetwork,
        x: np.ndarray,
        y: np.ndarray,
        generation: int,
        reason: str,
    ) -> TrainingReport:
        cfg = self._config
        order = self._rng.permutation(len(y))
        x, y = x[order], y[order]
        split = int(len(y) * (1 - VALIDATION_FRACTION))

        x_train = torch.from_numpy(x[:split])
        y_train = torch.from_numpy(y[:split])
        x_val = torch.from_numpy(x[split:])
        y_val = torch.from_numpy(y[split:])

        shuffler = torch.Generator()
        shuffler.manual_seed(int(self._rng.integers(0, 2**31 - 1)))
        criterion = nn.CrossEntropyLoss()
        optimizer = optim.Adam(network.parameters(), lr=cfg.learning_rate)

        train_loss = train_acc = 0.0
        val_loss: float | None = None
        val_acc: float | None = None

        for epoch in range(cfg.epochs):
            if generation != self._generation:
                logger.info("model.training_superseded", generation=generation, epoch=epoch)
                return TrainingReport(
                    generation, reason, len(y), epoch,
                    train_loss, train_acc, val_loss, val_acc, superseded=True,
                )

            network.train()
            perm = torch.randperm(len(y_train), generator=shuffler)
            loss_sum = 0.0
            correct = 0
            for start in range(0, len(perm), cfg.batch_size):
                idx = perm[start:start + cfg.batch_size]
                xb, yb = x_train[idx], y_train[idx]
                optimizer.zero_grad()
                logits = network(xb)
                loss = criterion(logits, yb)
                loss.backward()
                optimizer.step()
                loss_sum += loss.item() * len(idx)
                correct += int((logits.argmax(dim=1) == yb).sum())
            train_loss = loss_sum / max(len(y_train), 1)
            train_acc = correct / max(len(y_train), 1)

            if len(y_val):
                network.eval()
                with torch.no_grad():
                    logits = network(x_val)
                    val_loss = float(criterion(logits, y_val))
                    val_acc = float((logits.argmax(dim=1) == y_val).float().mean())

            logger.debug(
                "model.epoch",
                epoch=epoch + 1,
                loss=round(train_loss, 4),
                accuracy=round(train_acc, 4),
                val_loss=None if val_loss is None else round(val_loss, 4),
                val_accuracy=None if val_acc is None else round(val_acc, 4),
            )

        network.eval()
        return TrainingReport(
            generation, reason, len(y), cfg.epochs, train_loss, train_acc, val_loss, val_acc,
        )

    # ── Checkpoints ───────────────────────────────────────────

    def export_checkpoint(self) -> dict[str, Any] | None:
        """Serialisable snapshot of parameters, statistics and corpus."""
        snap = self._snapshot
        if snap is None:
            return None
        with self._lock:
            corpus_x = np.stack(self._corpus_x) if self._corpus_x else np.zeros((0, len(self._stats)))
            corpus_y = np.asarray(self._corpus_y, dtype=np.int64)
            sources = list(self._corpus_src)
            corrections = self._corrections
        return {
            "format": CHECKPOINT_FORMAT,
            "model_state_dict": snap.network.state_dict(),
            "network_config": self._config.to_dict(),
            "labels": [label.value for label in MOOD_LABELS],
            "feature_stats": stats_to_dict(self._stats),
            "corpus_features": torch.from_numpy(corpus_x.astype(np.float32)),
            "corpus_targets": torch.from_numpy(corpus_y),
            "corpus_sources": sources,
            "corrections": corrections,
            "version": snap.version,
            "saved_at": datetime.utcnow().isoformat(),
        }

    def import_checkpoint(self, checkpoint: dict[str, Any]) -> None:
        """Publish parameters from *checkpoint*.

        Raises :class:`CheckpointError` when the checkpoint does not match
        this build's labels or features.
        """
        try:
            if checkpoint.get("format") != CHECKPOINT_FORMAT:
                raise CheckpointError(f"unsupported checkpoint format {checkpoint.get('format')!r}")
            if list(checkpoint["labels"]) != [label.value for label in MOOD_LABELS]:
                raise CheckpointError("checkpoint labels do not match")
            stats = stats_from_dict(checkpoint["feature_stats"])
            if tuple(s.name for s in stats) != FEATURE_NAMES:
                raise CheckpointError("checkpoint features do not match")

            stored = NetworkConfig.from_dict(checkpoint["network_config"])
            config = replace(
                self._config,
                input_size=stored.input_size,
                hidden_layers=stored.hidden_layers,
                output_size=stored.output_size,
            )
            network = MoodNetwork(config)
            network.load_state_dict(checkpoint["model_state_dict"])
            network.eval()

            corpus_x = checkpoint["corpus_features"].numpy()
            corpus_y = checkpoint["corpus_targets"].numpy()
            sources = list(checkpoint["corpus_sources"])
        except CheckpointError:
            raise
        except Exception as exc:
            raise CheckpointError(f"malformed checkpoint: {exc}") from exc

        with self._lock:
            self._generation += 1
            self._config = config
            self._stats = stats
            self._corpus_x = list(corpus_x)
            self._corpus_y = [int(t) for t in corpus_y]
            self._corpus_src = sources
            self._corrections = int(checkpoint.get("corrections", 0))
            self._snapshot = _Snapshot(
                network, int(checkpoint.get("version", 1)), datetime.utcnow()
            )

    def _restore(self) -> bool:
        if self._store is None:
            return False
        try:
            checkpoint = self._store.load(self._model_id)
            if checkpoint is None:
                logger.info("model.no_checkpoint", model_id=self._model_id)
                return False
            self.import_checkpoint(checkpoint)
        except CheckpointError as exc:
            logger.warning("model.restore_failed", model_id=self._model_id, error=str(exc))
            return False
        logger.info("model.restored", model_id=self._model_id, version=self.version, corpus_size=self.corpus_size)
        return True

    def _persist(self) -> None:
        if self._store is None:
            return
        checkpoint = self.export_checkpoint()
        if checkpoint is None:
            return
        try:
            self._store.save(self._model_id, checkpoint)
        except Exception:
            logger.exception("model.save_failed", model_id=self._model_id)
