"""
AI-safety modules — one SafetyModule subclass per capability.

Every module runs in-process inside the core service or standalone behind
its own FastAPI app (safe_suite.modules.service).
"""

from __future__ import annotations

from safe_suite.core.exceptions import ConfigError, UnknownModuleError
from safe_suite.modules.adversarial import AdversarialModule
from safe_suite.modules.base import OperationSpec, SafetyModule
from safe_suite.modules.bias import BiasModule
from safe_suite.modules.ethics import EthicsModule
from safe_suite.modules.explainability import ExplainabilityModule
from safe_suite.modules.fake_content import FakeContentModule
from safe_suite.modules.fraud import FraudModule
from safe_suite.modules.moderation import ModerationModule
from safe_suite.modules.poisoning import PoisoningModule
from safe_suite.modules.redblue import RedBlueModule

BUILTIN_MODULES: dict[str, type[SafetyModule]] = {
    cls.name: cls
    for cls in (
        AdversarialModule,
        BiasModule,
        ModerationModule,
        ExplainabilityModule,
        FakeContentModule,
        FraudModule,
        RedBlueModule,
        PoisoningModule,
        EthicsModule,
    )
}


def create_module(name: str) -> SafetyModule:
    cls = BUILTIN_MODULES.get(name)
    if cls is None:
        raise UnknownModuleError(name)
    return cls()


def load_builtin_modules(selection: tuple[str, ...] | list[str] = ("all",)) -> list[SafetyModule]:
    """
    Instantiate built-in modules selected by name. ("all",) selects every
    module; ("none",) or an empty selection selects none.
    """
    wanted = [s.strip().lower() for s in selection if s.strip()]
    if not wanted or wanted == ["none"]:
        return []
    if "all" in wanted:
        return [cls() for cls in BUILTIN_MODULES.values()]
    unknown = [n for n in wanted if n not in BUILTIN_MODULES]
    if unknown:
        raise ConfigError(f"SAFE_BUILTIN_MODULES names unknown modules: {', '.join(unknown)}")
    return [BUILTIN_MODULES[n]() for n in wanted]


__all__ = [
    "BUILTIN_MODULES",
    "OperationSpec",
    "SafetyModule",
    "create_module",
    "load_builtin_modules",
]
