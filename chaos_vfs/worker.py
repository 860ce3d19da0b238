#!/usr/bin/env python3
"""
Chaos Maintenance Worker
Runs periodically to apply automated chaos behaviours across the whole VFS

One cycle = four passes, each over its own bounded listing:
    - resurrect due ghosts
    - passive entropy on aged entries
    - retrofit quantum states onto single-state files (level >= 3)
    - purge ghosts past the purge window

Entropy and quantum passes run alongside the graveyard passes; the two
graveyard passes run in order (resurrect, then purge) since they share the
graveyard namespace. A cycle never raises: every failure is logged and the
cycle moves on to the next item or pass.
"""
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from chaos_vfs.chaos.entropy import apply_drift, entry_age_days, passive_entropy_chance
from chaos_vfs.chaos.graveyard import GraveyardManager
from chaos_vfs.chaos.quantum import QuantumStateManager
from chaos_vfs.config import ChaosConfig
from chaos_vfs.datashapes import utc_now
from chaos_vfs.escalation import EscalationController
from chaos_vfs.error_logging import worker_logger, ErrorCodes
from chaos_vfs.metadata import MetadataRepository


class ChaosWorker:
    """Applies the maintenance passes against one object store."""

    def __init__(self, repository: MetadataRepository, escalation: EscalationController,
                 graveyard: GraveyardManager, quantum: QuantumStateManager,
                 chaos_config: Optional[ChaosConfig] = None, rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None, concurrent: bool = True):
        self.repository = repository
        self.escalation = escalation
        self.graveyard = graveyard
        self.quantum = quantum
        self.config = chaos_config or ChaosConfig()
        self.rng = rng or random.Random()
        self.clock = clock or utc_now
        self.concurrent = concurrent

    def run_cycle(self) -> Dict[str, Any]:
        """Main worker execution function. Safe to call repeatedly."""
        report = {
            'escalation_level': 0,
            'skipped': False,
            'resurrected': [],
            'mutated': 0,
            'states_generated': 0,
            'purged': [],
            'errors': 0,
        }
        worker_logger.log_info(ErrorCodes.WORKER_CYCLE_STARTED, "Starting chaos maintenance cycle")

        try:
            level = self.escalation.get_level()
            report['escalation_level'] = level

            if level == 0:
                worker_logger.log_info(ErrorCodes.WORKER_CYCLE_COMPLETE,
                                       "Escalation level 0, skipping chaos maintenance")
                report['skipped'] = True
                return report

            if self.concurrent:
                with ThreadPoolExecutor(max_workers=3, thread_name_prefix='chaos-pass') as pool:
                    graveyard_future = pool.submit(self._graveyard_passes)
                    entropy_future = pool.submit(self.apply_passive_entropy, level)
                    quantum_future = pool.submit(self.generate_missing_quantum_states, level)
                graveyard_result = self._collect(graveyard_future, 'graveyard', ([], []))
                entropy_result = self._collect(entropy_future, 'entropy', (0, 0))
                quantum_result = self._collect(quantum_future, 'quantum', (0, 0))
            else:
                graveyard_result = self._guard(self._graveyard_passes, 'graveyard', ([], []))
                entropy_result = self._guard(lambda: self.apply_passive_entropy(level), 'entropy', (0, 0))
                quantum_result = self._guard(lambda: self.generate_missing_quantum_states(level),
                                             'quantum', (0, 0))

            resurrected, purged = graveyard_result
            report['resurrected'] = [entry.id for entry in resurrected]
            report['purged'] = purged
            report['mutated'], entropy_errors = entropy_result
            report['states_generated'], quantum_errors = quantum_result
            report['errors'] += entropy_errors + quantum_errors

            worker_logger.log_info(ErrorCodes.WORKER_CYCLE_COMPLETE, "Chaos maintenance cycle complete", report)
        except Exception as e:
            worker_logger.log_error(ErrorCodes.WORKER_CYCLE_FAILED,
                                    f"Error during chaos maintenance: {e}", exc_info=True)
            report['errors'] += 1

        return report

    def _collect(self, future, name, default):
        try:
            return future.result()
        except Exception as e:
            worker_logger.log_error(ErrorCodes.WORKER_PASS_FAILED, f"{name} pass failed: {e}", exc_info=True)
            return default

    def _guard(self, func, name, default):
        try:
            return func()
        except Exception as e:
            worker_logger.log_error(ErrorCodes.WORKER_PASS_FAILED, f"{name} pass failed: {e}", exc_info=True)
            return default

    def _graveyard_passes(self):
        resurrected = self._guard(lambda: self.graveyard.process_resurrections(self.config.pass_limit),
                                  'resurrection', [])
        purged = self._guard(lambda: self.graveyard.purge_expired(self.config.pass_limit), 'purge', [])
        return resurrected, purged

    def apply_passive_entropy(self, escalation_level: int):
        """Drift names of aged entries. Returns (mutated, errors)."""
        now = self.clock()
        mutated = 0
        errors = 0

        for entry_id in self.repository.canonical_ids(self.config.pass_limit):
            try:
                entry = self.repository.get(entry_id)
                chance = passive_entropy_chance(entry_age_days(entry, now), escalation_level,
                                                self.config.passive_growth_rate)
                if self.rng.random() >= chance:
                    continue
                if apply_drift(entry, escalation_level, self.rng, now):
                    self.repository.put(entry)
                    mutated += 1
            except Exception as e:
                errors += 1
                worker_logger.log_error(ErrorCodes.WORKER_ITEM_FAILED,
                                        f"Error applying entropy to {entry_id}: {e}")

        if mutated:
            worker_logger.log_info(ErrorCodes.WORKER_CYCLE_COMPLETE,
                                   f"Applied passive entropy to {mutated} files")
        return mutated, errors

    def generate_missing_quantum_states(self, escalation_level: int):
        """Split a share of single-state files into superpositions. Returns (generated, errors)."""
        if escalation_level < self.config.quantum_min_level:
            return 0, 0

        generated = 0
        errors = 0
        for entry_id in self.repository.canonical_ids(self.config.pass_limit):
            try:
                entry = self.repository.get(entry_id)
                if entry.is_folder or len(entry.quantum_states) > 1:
                    continue
                if self.rng.random() >= self.config.quantum_generation_chance:
                    continue

                content = self.repository.get_content(entry.id)
                if content is None:
                    worker_logger.log_warning(ErrorCodes.WORKER_ITEM_FAILED,
                                              f"No content for {entry_id}, skipping quantum split")
                    continue

                self.quantum.split(entry, content, escalation_level)
                self.repository.put(entry)
                generated += 1
            except Exception as e:
                errors += 1
                worker_logger.log_error(ErrorCodes.WORKER_ITEM_FAILED,
                                        f"Error generating quantum states for {entry_id}: {e}")

        if generated:
            worker_logger.log_info(ErrorCodes.WORKER_CYCLE_COMPLETE,
                                   f"Generated quantum states for {generated} files")
        return generated, errors


class ChaosScheduler:
    """
    Runs ChaosWorker.run_cycle on a daemon thread every interval_seconds.
    """

    def __init__(self, worker: ChaosWorker, interval_seconds: int = 30):
        self.worker = worker
        self.interval_seconds = interval_seconds
        self.is_running = False
        self.monitor_thread = None
        self.last_report = None
        self._stop_event = threading.Event()

    def start(self):
        """Start the maintenance thread"""
        if self.is_running:
            worker_logger.log_warning(ErrorCodes.WORKER_SCHEDULER, "Chaos scheduler already running")
            return

        self.is_running = True
        self._stop_event.clear()
        self.monitor_thread = threading.Thread(target=self._run_loop, name='chaos-scheduler', daemon=True)
        self.monitor_thread.start()
        worker_logger.log_info(ErrorCodes.WORKER_SCHEDULER,
                               f"Started chaos scheduler (every {self.interval_seconds}s)")

    def stop(self):
        """Stop the maintenance thread"""
        self.is_running = False
        self._stop_event.set()
        if self.monitor_thread:
            self.monitor_thread.join(timeout=5)
        worker_logger.log_info(ErrorCodes.WORKER_SCHEDULER, "Stopped chaos scheduler")

    def _run_loop(self):
        """Main scheduling loop"""
        while self.is_running:
            started = time.time()
            try:
                self.last_report = self.worker.run_cycle()
            except Exception as e:
                worker_logger.log_error(ErrorCodes.WORKER_CYCLE_FAILED, f"Error in scheduler loop: {e}")
            elapsed = time.time() - started
            if self._stop_event.wait(max(0.0, self.interval_seconds - elapsed)):
                break
