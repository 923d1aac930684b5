from gwinspect.extension.base import Extension, execute_all
from gwinspect.extension.policyattachment import PolicyAttachmentExtension
from gwinspect.extension.effectivepolicy import (
    DEFAULT_HIERARCHY,
    EffectivePolicyExtension,
    InheritanceRule,
    load_hierarchy,
)
from gwinspect.extension.refgrantvalidator import ReferenceGrantValidatorExtension
from gwinspect.extension.notfoundvalidator import NotFoundRefValidatorExtension

__all__ = [
    "Extension",
    "execute_all",
    "PolicyAttachmentExtension",
    "EffectivePolicyExtension",
    "InheritanceRule",
    "DEFAULT_HIERARCHY",
    "load_hierarchy",
    "ReferenceGrantValidatorExtension",
    "NotFoundRefValidatorExtension",
]
