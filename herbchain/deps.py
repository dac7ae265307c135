# herbchain/deps.py
"""Accessors for the components wired onto app.state in the lifespan."""

from fastapi import Request

from herbchain.core.ledger import Ledger
from herbchain.core.provenance import ProvenanceBuilder
from herbchain.core.registry import RuleRegistry
from herbchain.core.service import SubmissionService
from herbchain.core.tracker import ConservationTracker
from herbchain.storage.base import LedgerStore


def get_store(request: Request) -> LedgerStore:
    return request.app.state.store


def get_registry(request: Request) -> RuleRegistry:
    return request.app.state.registry


def get_tracker(request: Request) -> ConservationTracker:
    return request.app.state.tracker


def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger


def get_builder(request: Request) -> ProvenanceBuilder:
    return request.app.state.builder


def get_service(request: Request) -> SubmissionService:
    return request.app.state.service
