"""Built-in approval workflows and red-flag patterns seeded into every install."""

from typing import List

from coordinator.schemas.approvals import (
    ApprovalStep,
    AutoApproveConditions,
    WorkflowDefinitionConfig,
)
from coordinator.schemas.enums import (
    ApprovalEntityType,
    CombinationLogic,
    ComparisonOperator,
    CompletionMode,
    EscalationAction,
    Role,
    Severity,
)
from coordinator.schemas.red_flags import (
    EscalationLevel,
    EscalationRules,
    NumericThreshold,
    PatternConditions,
    RedFlagPatternConfig,
)

SYSTEM_WORKFLOWS: List[WorkflowDefinitionConfig] = [
    # Default for findings: seeded first, so it wins the oldest-definition tie-break
    WorkflowDefinitionConfig(
        name="Standard Finding Approval",
        entity_type=ApprovalEntityType.FINDING,
        description="Standard approval workflow for all findings",
        mode=CompletionMode.SEQUENTIAL,
        steps=[
            ApprovalStep(step_number=1, approver_role=Role.ANALYST),
            ApprovalStep(step_number=2, approver_role=Role.MANAGER, can_delegate=True, timeout_hours=48),
            ApprovalStep(step_number=3, approver_role=Role.PARTNER, required=False, timeout_hours=72),
        ],
        auto_approve_conditions=AutoApproveConditions(confidence_threshold=0.95, low_impact_only=True),
    ),
    WorkflowDefinitionConfig(
        name="Critical Finding Approval",
        entity_type=ApprovalEntityType.FINDING,
        description="Approval workflow for critical/high-impact findings",
        mode=CompletionMode.SEQUENTIAL,
        steps=[
            ApprovalStep(step_number=1, approver_role=Role.MANAGER),
            ApprovalStep(step_number=2, approver_role=Role.PARTNER, timeout_hours=24),
            ApprovalStep(step_number=3, approver_role=Role.BOARD, timeout_hours=48),
        ],
    ),
    WorkflowDefinitionConfig(
        name="Analysis Plan Approval",
        entity_type=ApprovalEntityType.ANALYSIS_PLAN,
        description="Approval for agent analysis plans",
        mode=CompletionMode.PARALLEL,
        steps=[
            ApprovalStep(step_number=1, approver_role=Role.DEAL_LEAD, can_delegate=True, timeout_hours=24),
            ApprovalStep(step_number=1, approver_role=Role.DOMAIN_EXPERT, required=False, timeout_hours=48),
        ],
    ),
    WorkflowDefinitionConfig(
        name="Phase Transition Approval",
        entity_type=ApprovalEntityType.PHASE_TRANSITION,
        description="Approval required before transitioning to next deal phase",
        mode=CompletionMode.SEQUENTIAL,
        steps=[
            ApprovalStep(step_number=1, approver_role=Role.DEAL_LEAD, timeout_hours=48),
            ApprovalStep(step_number=2, approver_role=Role.PARTNER, timeout_hours=24),
        ],
    ),
    WorkflowDefinitionConfig(
        name="Executive Summary Approval",
        entity_type=ApprovalEntityType.EXECUTIVE_SUMMARY,
        description="Approval for executive summary before distribution",
        mode=CompletionMode.ANY_ONE,
        steps=[
            ApprovalStep(step_number=1, approver_role=Role.PARTNER),
            ApprovalStep(step_number=1, approver_role=Role.BOARD),
        ],
    ),
]


def _chain(*levels) -> List[EscalationLevel]:
    return [EscalationLevel(role=role, delay_hours=delay) for role, delay in levels]


SYSTEM_RED_FLAG_PATTERNS: List[RedFlagPatternConfig] = [
    RedFlagPatternConfig(
        name="Revenue Decline Trend",
        category="financial",
        description="Declining revenue over consecutive periods indicating business deterioration",
        severity=Severity.CRITICAL,
        conditions=PatternConditions(
            keywords=["revenue decline", "falling revenue", "decreasing sales"],
            numeric_thresholds=[
                NumericThreshold(field="revenue_growth_rate", operator=ComparisonOperator.LT, value=-10)
            ],
            finding_types=["financial_metric", "quality_of_earnings"],
            confidence_threshold=0.7,
            combination_logic=CombinationLogic.OR,
        ),
        escalation_rules=EscalationRules(
            immediate_actions=[
                EscalationAction.NOTIFY_PARTNER,
                EscalationAction.NOTIFY_DEAL_LEAD,
                EscalationAction.SCHEDULE_REVIEW,
            ],
            sla_hours=24,
            escalation_chain=_chain((Role.DEAL_LEAD, 0), (Role.PARTNER, 24), (Role.BOARD, 48)),
        ),
        metadata={"deal_phase": ["discovery", "deep_dive"], "historical_frequency": 0.15,
                  "false_positive_rate": 0.05},
    ),
    RedFlagPatternConfig(
        name="Customer Concentration Risk",
        category="commercial",
        description="Over-reliance on small number of customers poses significant risk",
        severity=Severity.HIGH,
        conditions=PatternConditions(
            keywords=["customer concentration", "top customer", "revenue concentration"],
            numeric_thresholds=[
                NumericThreshold(field="top_10_customer_percentage", operator=ComparisonOperator.GT, value=50)
            ],
            finding_types=["commercial_analysis", "risk_assessment"],
            confidence_threshold=0.75,
            combination_logic=CombinationLogic.AND,
        ),
        escalation_rules=EscalationRules(
            immediate_actions=[EscalationAction.NOTIFY_DEAL_LEAD, EscalationAction.TRIGGER_EXPERT_REVIEW],
            sla_hours=48,
            escalation_chain=_chain((Role.DEAL_LEAD, 0), (Role.PARTNER, 48)),
        ),
        metadata={"historical_frequency": 0.25, "false_positive_rate": 0.10},
    ),
    RedFlagPatternConfig(
        name="Critical Security Vulnerability",
        category="technical",
        description="High or critical severity security vulnerabilities detected",
        severity=Severity.CRITICAL,
        conditions=PatternConditions(
            keywords=["critical vulnerability", "security breach", "exploit", "cve"],
            finding_types=["security_assessment", "technical_analysis"],
            agent_sources=["technical"],
            confidence_threshold=0.8,
            combination_logic=CombinationLogic.AND,
        ),
        escalation_rules=EscalationRules(
            immediate_actions=[
                EscalationAction.NOTIFY_PARTNER,
                EscalationAction.TRIGGER_EXPERT_REVIEW,
                EscalationAction.BLOCK_PHASE_TRANSITION,
            ],
            sla_hours=12,
            escalation_chain=_chain((Role.TECH_LEAD, 0), (Role.PARTNER, 12), (Role.BOARD, 24)),
        ),
        metadata={"industry_specific": ["technology", "saas"], "historical_frequency": 0.08,
                  "false_positive_rate": 0.03},
    ),
    RedFlagPatternConfig(
        name="Negative EBITDA",
        category="financial",
        description="Company operating at a loss with negative adjusted EBITDA",
        severity=Severity.HIGH,
        conditions=PatternConditions(
            keywords=["negative ebitda", "operating loss", "unprofitable"],
            numeric_thresholds=[
                NumericThreshold(field="adjusted_ebitda", operator=ComparisonOperator.LT, value=0)
            ],
            finding_types=["financial_metric", "quality_of_earnings"],
            confidence_threshold=0.9,
            combination_logic=CombinationLogic.OR,
        ),
        escalation_rules=EscalationRules(
            immediate_actions=[EscalationAction.NOTIFY_PARTNER, EscalationAction.SCHEDULE_REVIEW],
            sla_hours=36,
            escalation_chain=_chain((Role.DEAL_LEAD, 0), (Role.PARTNER, 36)),
        ),
        metadata={"deal_phase": ["discovery", "deep_dive"], "historical_frequency": 0.12,
                  "false_positive_rate": 0.02},
    ),
    RedFlagPatternConfig(
        name="Legal or Compliance Issue",
        category="legal",
        description="Pending litigation, regulatory investigation, or compliance violations",
        severity=Severity.CRITICAL,
        conditions=PatternConditions(
            keywords=[
                "litigation",
                "lawsuit",
                "regulatory investigation",
                "compliance violation",
                "sec investigation",
                "ftc",
            ],
            finding_types=["legal_review", "risk_assessment"],
            confidence_threshold=0.7,
            combination_logic=CombinationLogic.OR,
        ),
        escalation_rules=EscalationRules(
            immediate_actions=[
                EscalationAction.NOTIFY_PARTNER,
                EscalationAction.NOTIFY_BOARD,
                EscalationAction.TRIGGER_EXPERT_REVIEW,
                EscalationAction.BLOCK_PHASE_TRANSITION,
            ],
            sla_hours=12,
            escalation_chain=_chain((Role.LEGAL_COUNSEL, 0), (Role.PARTNER, 8), (Role.BOARD, 12)),
        ),
        metadata={"historical_frequency": 0.05, "false_positive_rate": 0.08},
    ),
    RedFlagPatternConfig(
        name="Key Person Dependency",
        category="operational",
        description="Critical dependency on single individual or small team",
        severity=Severity.MEDIUM,
        conditions=PatternConditions(
            keywords=["key person risk", "founder dependency", "single point of failure"],
            finding_types=["operational_analysis", "org_assessment"],
            confidence_threshold=0.65,
            combination_logic=CombinationLogic.OR,
        ),
        escalation_rules=EscalationRules(
            immediate_actions=[EscalationAction.NOTIFY_DEAL_LEAD, EscalationAction.CREATE_FOLLOW_UP_TASK],
            sla_hours=72,
            escalation_chain=_chain((Role.DEAL_LEAD, 0), (Role.PARTNER, 72)),
            auto_escalate=False,
        ),
        metadata={"historical_frequency": 0.35, "false_positive_rate": 0.15},
    ),
    RedFlagPatternConfig(
        name="High Churn Rate",
        category="commercial",
        description="Customer churn rate significantly above industry benchmarks",
        severity=Severity.HIGH,
        conditions=PatternConditions(
            keywords=["high churn", "customer attrition", "retention issues"],
            numeric_thresholds=[
                NumericThreshold(field="annual_churn_rate", operator=ComparisonOperator.GT, value=25)
            ],
            finding_types=["commercial_analysis", "customer_metrics"],
            confidence_threshold=0.75,
            combination_logic=CombinationLogic.AND,
        ),
        escalation_rules=EscalationRules(
            immediate_actions=[EscalationAction.NOTIFY_DEAL_LEAD, EscalationAction.SCHEDULE_REVIEW],
            sla_hours=48,
            escalation_chain=_chain((Role.DEAL_LEAD, 0), (Role.PARTNER, 48)),
        ),
        metadata={"industry_specific": ["saas", "subscription"], "historical_frequency": 0.18,
                  "false_positive_rate": 0.12},
    ),
]
