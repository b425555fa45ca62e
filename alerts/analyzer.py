"""Predictive analysis of alert history to propose better rule thresholds."""
import logging
import math
import queue
import threading
from datetime import datetime, timedelta, timezone

from models.alerts import ProposedRule, RuleOptimization

logger = logging.getLogger("crewalerts.analyzer")

DEFAULTS = {
    "window_days": 90,
    "weeks_in_window": 12,
    "min_data_points": 5,
    "high_frequency_per_week": 5,
    "slow_resolution_hours": 6,
    "low_frequency_per_week": 2,
    "fast_resolution_hours": 1,
    "tighten_factor": 0.8,
    "relax_factor": 1.2,
}


class AnalysisCancelled(Exception):
    """Analysis was stopped through its cancel event."""


class AnalysisTimeoutError(Exception):
    """Analysis did not finish before its deadline."""


class PredictiveAnalyzer:
    """Compares each rule against how often it fired and how fast it was resolved.

    Rules that fire often and stay open long are tightened (lower threshold,
    shorter timeout) so problems surface earlier. Rules that rarely fire and
    clear within the hour are relaxed to cut noise.
    """

    def __init__(self, rules_manager, db, config=None):
        self.rules_manager = rules_manager
        self.db = db
        self.settings = {**DEFAULTS, **((config or {}).get("analyzer", {}))}

    def analyze(self, now=None, cancel_event=None):
        now = now or datetime.now(timezone.utc)
        window_days = self.settings["window_days"]
        logger.info(f"Analyzing {window_days}-day alert history to find optimization opportunities...")

        since = now - timedelta(days=window_days)
        history = [e for e in self.db.get_alert_history(since=since) if e.resolved_at is not None]

        improvements = []
        for rule in self.rules_manager.get_all_rules():
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelled(f"Analysis cancelled before rule {rule.key}")

            events = [e for e in history if e.rule_key == rule.key]
            if len(events) < self.settings["min_data_points"]:
                logger.info(f"Rule [{rule.key}] has too few data points ({len(events)}) "
                            f"in the last {window_days} days. Skipping.")
                continue

            improvement = self.evaluate_rule(rule, events)
            if improvement:
                improvements.append(improvement)
            else:
                logger.info(f"Rule [{rule.key}] is performing optimally. No changes recommended.")

        logger.info(f"Analysis complete. Found {len(improvements)} potential improvement(s).")
        return improvements

    def evaluate_rule(self, rule, events):
        """Return a RuleOptimization for rule given its resolved events, or None."""
        s = self.settings
        avg_resolution = sum(e.resolution_hours for e in events) / len(events)
        weekly_frequency = math.ceil(len(events) / s["weeks_in_window"])

        threshold = rule.threshold
        timeout = rule.timeout_hours
        reason = ""

        if weekly_frequency > s["high_frequency_per_week"] and avg_resolution > s["slow_resolution_hours"]:
            threshold = max(1, math.floor(rule.threshold * s["tighten_factor"]))
            if timeout:
                timeout = max(1, math.floor(timeout / 2))
            reason = (f"High frequency ({weekly_frequency}/week) and slow resolution "
                      f"({avg_resolution:.1f}h). Suggesting earlier detection.")
        elif weekly_frequency < s["low_frequency_per_week"] and avg_resolution < s["fast_resolution_hours"]:
            threshold = math.ceil(rule.threshold * s["relax_factor"])
            reason = (f"Low frequency ({weekly_frequency}/week) and fast resolution "
                      f"({avg_resolution:.1f}h). Suggesting reduced sensitivity.")

        if threshold == rule.threshold and timeout == rule.timeout_hours:
            return None

        return RuleOptimization(
            key=rule.key,
            old_rule=ProposedRule(threshold=rule.threshold, timeout_hours=rule.timeout_hours),
            new_rule=ProposedRule(threshold=threshold, timeout_hours=timeout),
            reason=reason,
        )


def run_with_deadline(analyzer, timeout_seconds, now=None):
    """Run analyzer.analyze on a daemon thread, giving up after timeout_seconds.

    On expiry the cancel event is set so the worker stops at the next rule,
    and AnalysisTimeoutError is raised without waiting for it. The worker is a
    daemon so a call that never returns cannot hold the process open at exit.
    """
    cancel_event = threading.Event()
    results = queue.Queue(maxsize=1)

    def _worker():
        try:
            results.put((True, analyzer.analyze(now=now, cancel_event=cancel_event)))
        except BaseException as e:
            results.put((False, e))

    worker = threading.Thread(target=_worker, name="analyzer", daemon=True)
    worker.start()
    try:
        ok, value = results.get(timeout=timeout_seconds)
    except queue.Empty:
        cancel_event.set()
        raise AnalysisTimeoutError(f"Analysis exceeded {timeout_seconds}s deadline") from None
    if not ok:
        raise value
    return value
