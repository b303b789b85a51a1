"""
Shared fixtures for the BitRaise contract tests.

Every test runs in a fresh algopy testing context with the round counter
pinned to START_ROUND, so campaign deadlines are predictable.
"""

import pytest
from algopy import Account, UInt64
from algopy.arc4 import Address, String, UInt64 as ARC4UInt64
from algopy_testing import AlgopyTestContext, algopy_testing_context

from contracts.bitraise.contract import BitRaise
from tests.constants import DEFAULT_DURATION, DEFAULT_GOAL, START_ROUND


@pytest.fixture
def context() -> AlgopyTestContext:
    """Create a fresh testing context for each test."""
    with algopy_testing_context() as ctx:
        ctx.ledger.patch_global_fields(round=UInt64(START_ROUND))
        yield ctx


@pytest.fixture
def contract(context: AlgopyTestContext) -> BitRaise:
    """Deployed contract; the default sender is the platform owner."""
    contract = BitRaise()
    contract.create()
    return contract


@pytest.fixture
def owner(context: AlgopyTestContext) -> Account:
    return context.default_sender


@pytest.fixture
def creator(context: AlgopyTestContext) -> Account:
    return context.any.account()


@pytest.fixture
def backer(context: AlgopyTestContext) -> Account:
    return context.any.account()


@pytest.fixture
def act_as(context: AlgopyTestContext):
    """Run the next contract call with `sender` as Txn.sender."""

    def _act_as(sender: Account):
        return context.txn.create_group(active_txn_overrides={"sender": sender})

    return _act_as


@pytest.fixture
def advance_to(context: AlgopyTestContext):
    """Move the round counter."""

    def _advance_to(round_number: int) -> None:
        context.ledger.patch_global_fields(round=UInt64(round_number))

    return _advance_to


@pytest.fixture
def make_campaign(context: AlgopyTestContext, contract: BitRaise, act_as):
    """Create a campaign, grouped with a deposit of `paid` (defaults to the storage cost)."""

    def _make_campaign(
        creator: Account,
        goal: int = DEFAULT_GOAL,
        duration: int = DEFAULT_DURATION,
        title: str = "Test Campaign",
        description: str = "Test description",
        metadata_uri: str = "ipfs://QmTest",
        paid: int | None = None,
    ) -> ARC4UInt64:
        if paid is None:
            paid = contract.get_campaign_storage_cost(
                Address(creator), String(title), String(description), String(metadata_uri)
            ).native
        payment = context.any.txn.payment(
            sender=creator,
            receiver=context.ledger.get_app(contract).address,
            amount=UInt64(paid),
        )
        with act_as(creator):
            return contract.create_campaign(
                String(title),
                String(description),
                ARC4UInt64(goal),
                ARC4UInt64(duration),
                String(metadata_uri),
                payment,
            )

    return _make_campaign


@pytest.fixture
def make_pledge(context: AlgopyTestContext, contract: BitRaise, act_as):
    """Pledge `amount`, grouped with a payment of `paid` (defaults to amount plus storage cost)."""

    def _make_pledge(
        backer: Account,
        campaign_id: ARC4UInt64,
        amount: int,
        paid: int | None = None,
        receiver: Account | None = None,
    ):
        if paid is None:
            paid = amount + contract.get_pledge_storage_cost(campaign_id, Address(backer)).native
        app = context.ledger.get_app(contract)
        payment = context.any.txn.payment(
            sender=backer,
            receiver=receiver if receiver is not None else app.address,
            amount=UInt64(paid),
        )
        with act_as(backer):
            return contract.pledge(campaign_id, ARC4UInt64(amount), payment)

    return _make_pledge
