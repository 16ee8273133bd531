"""Scheduling engine for weekly broker allocation."""

from brokershift.scheduling.allocation_engine import AllocationEngine, AllocationResult
from brokershift.scheduling.bottleneck import (
    BottleneckAnalyzer,
    BottleneckPriority,
    BottleneckReport,
    CascadeWarning,
    DemandAnalysis,
)
from brokershift.scheduling.cpsat_solver import (
    CPSATWeekSolver,
    SolverConfig,
    SolverResult,
    SolverType,
)
from brokershift.scheduling.demand_mapper import DemandMapper, DemandMappingResult
from brokershift.scheduling.eligibility import EligibilityResolver
from brokershift.scheduling.events import EventKind, EventRecorder, SchedulingEvent
from brokershift.scheduling.internal_allocator import InternalShiftAllocator, SaturdayStaffing
from brokershift.scheduling.orchestrator import (
    AcceptanceMode,
    MonthlyResult,
    MonthlyScheduler,
    RetryOrchestrator,
    WeekResult,
    month_week_starts,
)
from brokershift.scheduling.rules import RelaxationLevel, RuleEngine, RuleId, Verdict
from brokershift.scheduling.shuffle import shuffle
from brokershift.scheduling.state import (
    AllocationContext,
    AllocationRecord,
    BrokerState,
    Reservation,
)
from brokershift.scheduling.weekly_generator import WeekGenerationResult, WeeklyGenerator

__all__ = [
    # Week pipeline
    "DemandMapper",
    "DemandMappingResult",
    "EligibilityResolver",
    "BottleneckAnalyzer",
    "BottleneckPriority",
    "BottleneckReport",
    "CascadeWarning",
    "DemandAnalysis",
    "AllocationEngine",
    "AllocationResult",
    "InternalShiftAllocator",
    "SaturdayStaffing",
    "WeeklyGenerator",
    "WeekGenerationResult",
    # Rules and state
    "AllocationContext",
    "AllocationRecord",
    "BrokerState",
    "RelaxationLevel",
    "Reservation",
    "RuleEngine",
    "RuleId",
    "Verdict",
    "shuffle",
    # Orchestration
    "AcceptanceMode",
    "MonthlyResult",
    "MonthlyScheduler",
    "RetryOrchestrator",
    "WeekResult",
    "month_week_starts",
    # CP-SAT
    "CPSATWeekSolver",
    "SolverConfig",
    "SolverResult",
    "SolverType",
    # Events
    "EventKind",
    "EventRecorder",
    "SchedulingEvent",
]
