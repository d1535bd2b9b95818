"""Which dashboard buckets a document belongs to for a given user.

The approval rules are data: an immutable table keyed by ``(RoleClass, DocType)``.
Every rule evaluates in-process against a ``UnifiedDocument`` and renders as a SQL
expression over the feed columns, so the live query and the snapshot path agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from sqlalchemy import and_, false, func, literal, or_
from sqlalchemy.sql.expression import any_

from .documents import ROOT_DOC_TYPES, DocType, UnifiedDocument

DEFAULT_PRIVILEGED_ROLES = ("Purchasing Staff", "Purchasing Head", "Purchasing Admin")


class RoleClass(str, Enum):
    PRIVILEGED = "privileged"
    REGULAR = "regular"


class RequestType(str, Enum):
    MY_REQUEST = "my_request"
    MY_APPROVAL = "my_approval"
    ALL = "all"


@dataclass(frozen=True)
class RequestUser:
    """The authenticated caller, as resolved by the gateway."""

    id: int
    role: Optional[str] = None


@dataclass(frozen=True)
class ApprovalRule:
    via_approvers: bool = False
    via_assignment: bool = False
    pending_statuses: frozenset[str] = frozenset()
    excluded_statuses: frozenset[str] = frozenset()

    def grants_anything(self) -> bool:
        return self.via_approvers or self.via_assignment or bool(self.pending_statuses)

    def matches(self, document: UnifiedDocument, user_id: int) -> bool:
        if document.status in self.excluded_statuses:
            return False
        if self.via_approvers and user_id in document.approvers:
            return True
        if self.via_assignment and document.assigned_to_user_id == user_id:
            return True
        return document.status in self.pending_statuses

    def expression(self, columns, user_id: int):
        grants = []
        if self.via_approvers:
            grants.append(
                or_(
                    literal(user_id) == any_(columns.primary_approvers),
                    literal(user_id) == any_(columns.alternate_approvers),
                )
            )
        if self.via_assignment:
            grants.append(columns.assigned_to_user_id == user_id)
        if self.pending_statuses:
            grants.append(columns.status.in_(sorted(self.pending_statuses)))
        if not grants:
            return false()
        clause = or_(*grants)
        if self.excluded_statuses:
            clause = and_(columns.status.notin_(sorted(self.excluded_statuses)), clause)
        return clause


NO_APPROVAL = ApprovalRule()

_APPROVER_TYPES = (
    DocType.REQUISITION,
    DocType.CANVASS,
    DocType.PURCHASE_ORDER,
    DocType.PAYMENT_REQUEST,
    DocType.NON_REQUISITION,
)


def default_rules() -> dict[tuple[RoleClass, DocType], ApprovalRule]:
    rules: dict[tuple[RoleClass, DocType], ApprovalRule] = {}
    for doc_type in DocType:
        rules[(RoleClass.PRIVILEGED, doc_type)] = ApprovalRule(
            via_approvers=doc_type in _APPROVER_TYPES,
            via_assignment=True,
            pending_statuses=frozenset({"assigning"}) if doc_type is DocType.REQUISITION else frozenset(),
        )

    rules[(RoleClass.REGULAR, DocType.REQUISITION)] = ApprovalRule(
        via_approvers=True, excluded_statuses=frozenset({"rs_draft"})
    )
    rules[(RoleClass.REGULAR, DocType.CANVASS)] = ApprovalRule(via_approvers=True)
    rules[(RoleClass.REGULAR, DocType.PURCHASE_ORDER)] = ApprovalRule(via_approvers=True)
    rules[(RoleClass.REGULAR, DocType.DELIVERY_RECEIPT)] = NO_APPROVAL
    rules[(RoleClass.REGULAR, DocType.INVOICE)] = NO_APPROVAL
    rules[(RoleClass.REGULAR, DocType.PAYMENT_REQUEST)] = ApprovalRule(
        via_approvers=True, excluded_statuses=frozenset({"PR Draft"})
    )
    rules[(RoleClass.REGULAR, DocType.NON_REQUISITION)] = ApprovalRule(via_approvers=True)
    return rules


@dataclass(frozen=True)
class Classification:
    my_request: bool
    my_approval: bool

    def in_bucket(self, request_type: RequestType) -> bool:
        if request_type is RequestType.MY_REQUEST:
            return self.my_request
        if request_type is RequestType.MY_APPROVAL:
            return self.my_approval
        return True


class VisibilityPolicy:
    """Immutable role/doc-type rule table. Built once, shared by every request."""

    def __init__(
        self,
        rules: Mapping[tuple[RoleClass, DocType], ApprovalRule] | None = None,
        privileged_roles: Iterable[str] = DEFAULT_PRIVILEGED_ROLES,
    ) -> None:
        self._rules = MappingProxyType(dict(rules if rules is not None else default_rules()))
        self._privileged_roles = frozenset(privileged_roles)

    @property
    def rules(self) -> Mapping[tuple[RoleClass, DocType], ApprovalRule]:
        return self._rules

    @property
    def privileged_roles(self) -> frozenset[str]:
        return self._privileged_roles

    def role_class(self, role: Optional[str]) -> RoleClass:
        return RoleClass.PRIVILEGED if role in self._privileged_roles else RoleClass.REGULAR

    def rule_for(self, role_class: RoleClass, doc_type: DocType) -> ApprovalRule:
        return self._rules.get((role_class, doc_type), NO_APPROVAL)

    def is_my_request(self, document: UnifiedDocument, user: RequestUser) -> bool:
        return document.doc_type in ROOT_DOC_TYPES and document.requestor_id == user.id

    def is_my_approval(self, document: UnifiedDocument, user: RequestUser) -> bool:
        rule = self.rule_for(self.role_class(user.role), document.doc_type)
        return rule.matches(document, user.id)

    def classify(self, document: UnifiedDocument, user: RequestUser) -> Classification:
        return Classification(
            my_request=self.is_my_request(document, user),
            my_approval=self.is_my_approval(document, user),
        )

    def my_request_expression(self, columns, user: RequestUser):
        clause = and_(
            columns.requestor_id == user.id,
            columns.doc_type.in_(sorted(doc_type.value for doc_type in ROOT_DOC_TYPES)),
        )
        return func.coalesce(clause, false())

    def my_approval_expression(self, columns, user: RequestUser):
        role_class = self.role_class(user.role)
        branches = []
        for doc_type in DocType:
            rule = self.rule_for(role_class, doc_type)
            if rule.grants_anything():
                branches.append(and_(columns.doc_type == doc_type.value, rule.expression(columns, user.id)))
        if not branches:
            return false()
        return func.coalesce(or_(*branches), false())
