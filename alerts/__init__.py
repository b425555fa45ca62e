"""Alert rule tuning: rule table, analyzer, report and patcher."""
from alerts.rules_manager import RulesManager, RuleTableError
from alerts.analyzer import PredictiveAnalyzer, AnalysisTimeoutError, AnalysisCancelled, run_with_deadline
from alerts.report import write_report, load_report, ReportError
from alerts.patcher import RulePatcher
