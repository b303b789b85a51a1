"""
BitRaise Crowdfunding Escrow Smart Contract

Campaign-based crowdfunding with all-or-nothing settlement. Backers pledge
ALGO toward a creator-defined goal; once the funding window closes the
campaign resolves exactly once: the creator withdraws (minus the platform
fee) if the goal was met, otherwise every backer can reclaim their pledge.

Features:
- Create campaigns with goal, duration (in rounds) and off-chain metadata URI
- Pledge to campaigns, accumulating per-backer totals
- Eager, one-way success once the goal is reached (over-funding allowed)
- Creator withdrawal after the deadline, with platform fee retention
- Per-backer refunds after the deadline when the goal was missed
- Cancellation of campaigns that never received a pledge
- Owner-gated platform fee, pause switch and fee sweep

Algorand Primitives Used:
- AVM Application (smart contract)
- Escrow pattern (application account holds pledges)
- Grouped payment transactions (pledge and box storage deposits)
- Inner Transactions (payouts, refunds, fee sweep)
- Boxes (campaigns, pledges, backer and creator counters)
- ARC-28 events for every state change

Error handling:
    Every rejected call fails an assert whose message starts with the error
    code (``ERR_<KIND>``) followed by the condition that triggered it. Some
    codes are deliberately shared between conditions (``ERR_INVALID_AMOUNT``,
    ``ERR_GOAL_NOT_REACHED``); the suffix tells them apart.
"""

from algopy import (
    ARC4Contract,
    Account,
    BoxMap,
    Bytes,
    Global,
    GlobalState,
    Txn,
    UInt64,
    arc4,
    gtxn,
    itxn,
    op,
    subroutine,
)


# Campaign status constants
STATUS_ACTIVE = 0
STATUS_SUCCESSFUL = 1
STATUS_FAILED = 2
STATUS_CANCELLED = 3

# One whole ALGO in microALGOs
MIN_GOAL = 1_000_000

# Duration bounds in rounds (10 minute rounds: ~1 day / ~1 year)
MIN_DURATION = 144
MAX_DURATION = 52_560

MAX_FEE_PCT = 10
DEFAULT_FEE_PCT = 2

# Text bounds in bytes
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_METADATA_LENGTH = 256

# Box minimum balance: 2500 per box + 400 per byte of key and value
BOX_FLAT_MIN_BALANCE = 2_500
BOX_BYTE_MIN_BALANCE = 400

# Box key lengths including prefix, and fixed value sizes
CAMPAIGN_KEY_LENGTH = 13  # "camp_" + uint64
PLEDGE_KEY_LENGTH = 47  # "pledge_" + uint64 + address
PLEDGE_VALUE_LENGTH = 17  # uint64 + bool + uint64
BACKERS_KEY_LENGTH = 16  # "backers_" + uint64
USER_KEY_LENGTH = 37  # "user_" + address
COUNTER_VALUE_LENGTH = 8


class Campaign(arc4.Struct):
    creator: arc4.Address
    title: arc4.String
    description: arc4.String
    goal: arc4.UInt64
    deadline: arc4.UInt64
    total_pledged: arc4.UInt64
    state: arc4.UInt64
    metadata_uri: arc4.String
    withdrawn: arc4.Bool
    created_at: arc4.UInt64


class Pledge(arc4.Struct):
    amount: arc4.UInt64
    refunded: arc4.Bool
    pledged_at: arc4.UInt64


class FeeLedger(arc4.Struct):
    """Platform administration record: owner, fee rate, pause flag, fees."""

    owner: arc4.Address
    fee_percentage: arc4.UInt64
    paused: arc4.Bool
    accrued_fees: arc4.UInt64


# Events
class CampaignCreated(arc4.Struct):
    campaign_id: arc4.UInt64
    creator: arc4.Address
    goal: arc4.UInt64
    deadline: arc4.UInt64


class PledgeMade(arc4.Struct):
    campaign_id: arc4.UInt64
    backer: arc4.Address
    amount: arc4.UInt64
    total_pledged: arc4.UInt64


class FundsWithdrawn(arc4.Struct):
    campaign_id: arc4.UInt64
    creator: arc4.Address
    payout: arc4.UInt64
    fee: arc4.UInt64


class RefundIssued(arc4.Struct):
    campaign_id: arc4.UInt64
    backer: arc4.Address
    amount: arc4.UInt64


class CampaignCancelled(arc4.Struct):
    campaign_id: arc4.UInt64


class PlatformFeeUpdated(arc4.Struct):
    fee_percentage: arc4.UInt64


class PauseChanged(arc4.Struct):
    paused: arc4.Bool


class PlatformFeesWithdrawn(arc4.Struct):
    owner: arc4.Address
    amount: arc4.UInt64


@subroutine
def platform_fee(total: UInt64, fee_percentage: UInt64) -> UInt64:
    """Fee retained on withdrawal, rounded down."""
    return total * fee_percentage // 100


@subroutine
def pledge_key(campaign_id: UInt64, backer: Account) -> Bytes:
    return op.itob(campaign_id) + backer.bytes


@subroutine
def box_min_balance(key_length: UInt64, value_length: UInt64) -> UInt64:
    """Minimum balance a box locks on the app account."""
    return BOX_FLAT_MIN_BALANCE + BOX_BYTE_MIN_BALANCE * (key_length + value_length)


@subroutine
def assert_deposit(payment: gtxn.PaymentTransaction, expected: UInt64) -> None:
    """The grouped payment must come from the caller to the app for `expected`."""
    assert payment.sender == Txn.sender, "ERR_TRANSFER_FAILED: payment sender mismatch"
    assert payment.receiver == Global.current_application_address, (
        "ERR_TRANSFER_FAILED: payment receiver mismatch"
    )
    assert payment.amount == expected, "ERR_TRANSFER_FAILED: payment amount mismatch"


@subroutine
def assert_owner(ledger: FeeLedger) -> None:
    assert Txn.sender == ledger.owner.native, "ERR_NOT_AUTHORIZED: owner only"


@subroutine
def is_goal_reached(campaign: Campaign) -> bool:
    return campaign.total_pledged.native >= campaign.goal.native


@subroutine
def is_deadline_passed(campaign: Campaign) -> bool:
    return Global.round > campaign.deadline.native


class BitRaise(ARC4Contract):
    """
    Crowdfunding escrow with deadline-driven settlement.

    State Schema:
    - Global State:
        - campaign_nonce: Next campaign ID (equals the number of campaigns)
        - fee_ledger: FeeLedger record (owner, fee rate, pause flag, fees)

    - Boxes:
        - camp_{id}: Campaign record
        - pledge_{id}{address}: Pledge record for a backer
        - backers_{id}: Distinct backer count for a campaign
        - user_{address}: Number of campaigns created by an address
    """

    def __init__(self) -> None:
        self.campaign_nonce = GlobalState(UInt64)
        self.fee_ledger = GlobalState(FeeLedger)
        self.campaigns = BoxMap(UInt64, Campaign, key_prefix=b"camp_")
        self.pledges = BoxMap(Bytes, Pledge, key_prefix=b"pledge_")
        self.backer_counts = BoxMap(UInt64, UInt64, key_prefix=b"backers_")
        self.user_campaigns = BoxMap(Bytes, UInt64, key_prefix=b"user_")

    @arc4.abimethod(create="require")
    def create(self) -> None:
        """
        Create the crowdfunding contract.
        The creating account becomes the platform owner.
        """
        self.campaign_nonce.value = UInt64(0)
        self.fee_ledger.value = FeeLedger(
            owner=arc4.Address(Txn.sender),
            fee_percentage=arc4.UInt64(DEFAULT_FEE_PCT),
            paused=arc4.Bool(False),
            accrued_fees=arc4.UInt64(0),
        )

    @subroutine
    def _load_campaign(self, campaign_id: UInt64) -> Campaign:
        assert campaign_id in self.campaigns, "ERR_CAMPAIGN_NOT_FOUND: unknown campaign"
        return self.campaigns[campaign_id].copy()

    @subroutine
    def _campaign_storage_cost(self, creator: Account, campaign: Campaign) -> UInt64:
        cost = box_min_balance(UInt64(CAMPAIGN_KEY_LENGTH), campaign.bytes.length)
        if creator.bytes not in self.user_campaigns:
            cost += box_min_balance(UInt64(USER_KEY_LENGTH), UInt64(COUNTER_VALUE_LENGTH))
        return cost

    @subroutine
    def _pledge_storage_cost(self, campaign_id: UInt64, backer: Account) -> UInt64:
        cost = UInt64(0)
        if pledge_key(campaign_id, backer) not in self.pledges:
            cost += box_min_balance(UInt64(PLEDGE_KEY_LENGTH), UInt64(PLEDGE_VALUE_LENGTH))
            if campaign_id not in self.backer_counts:
                cost += box_min_balance(UInt64(BACKERS_KEY_LENGTH), UInt64(COUNTER_VALUE_LENGTH))
        return cost

    # ------------------------------------------------------------------
    # Campaign lifecycle
    # ------------------------------------------------------------------

    @arc4.abimethod
    def create_campaign(
        self,
        title: arc4.String,
        description: arc4.String,
        goal: arc4.UInt64,
        duration: arc4.UInt64,
        metadata_uri: arc4.String,
        payment: gtxn.PaymentTransaction,
    ) -> arc4.UInt64:
        """
        Create a new fundraising campaign.
        Must be grouped with a payment from the caller to the application
        account covering the minimum balance of the boxes this call creates
        (see get_campaign_storage_cost).

        Args:
            title: Campaign title
            description: Campaign description
            goal: Funding goal in microALGOs
            duration: Funding window length in rounds
            metadata_uri: Opaque pointer to off-chain metadata (e.g. ipfs://...)
            payment: Storage deposit transaction

        Returns:
            Campaign ID
        """
        assert not self.fee_ledger.value.paused.native, "ERR_CONTRACT_PAUSED: campaign creation paused"

        title_length = title.native.bytes.length
        description_length = description.native.bytes.length
        assert title_length > 0 and description_length > 0, (
            "ERR_INVALID_AMOUNT: empty title or description"
        )
        assert (
            title_length <= MAX_TITLE_LENGTH
            and description_length <= MAX_DESCRIPTION_LENGTH
            and metadata_uri.native.bytes.length <= MAX_METADATA_LENGTH
        ), "ERR_INVALID_AMOUNT: text too long"
        assert goal.native >= MIN_GOAL, "ERR_INVALID_GOAL: goal below minimum"
        assert duration.native >= MIN_DURATION, "ERR_INVALID_DEADLINE: duration too short"
        assert duration.native <= MAX_DURATION, "ERR_INVALID_DEADLINE: duration too long"

        campaign_id = self.campaign_nonce.value
        deadline = Global.round + duration.native

        campaign = Campaign(
            creator=arc4.Address(Txn.sender),
            title=title,
            description=description,
            goal=goal,
            deadline=arc4.UInt64(deadline),
            total_pledged=arc4.UInt64(0),
            state=arc4.UInt64(STATUS_ACTIVE),
            metadata_uri=metadata_uri,
            withdrawn=arc4.Bool(False),
            created_at=arc4.UInt64(Global.round),
        )
        assert_deposit(payment, self._campaign_storage_cost(Txn.sender, campaign.copy()))

        self.campaigns[campaign_id] = campaign.copy()
        self.campaign_nonce.value = campaign_id + 1

        creator_key = Txn.sender.bytes
        self.user_campaigns[creator_key] = self.user_campaigns.get(creator_key, default=UInt64(0)) + 1

        arc4.emit(
            CampaignCreated(
                arc4.UInt64(campaign_id),
                arc4.Address(Txn.sender),
                goal,
                arc4.UInt64(deadline),
            )
        )
        return arc4.UInt64(campaign_id)

    @arc4.abimethod
    def pledge(
        self,
        campaign_id: arc4.UInt64,
        amount: arc4.UInt64,
        payment: gtxn.PaymentTransaction,
    ) -> arc4.Bool:
        """
        Pledge to a campaign.
        Must be grouped with a payment from the caller to the application
        account of `amount` plus the storage cost of a first pledge
        (see get_pledge_storage_cost). Only `amount` is escrowed.

        Args:
            campaign_id: ID of the campaign
            amount: Pledge amount in microALGOs
            payment: Escrow deposit transaction

        Returns:
            True
        """
        campaign = self._load_campaign(campaign_id.native)

        assert amount.native > 0, "ERR_INVALID_AMOUNT: zero pledge"
        assert campaign.state.native != STATUS_CANCELLED, "ERR_CAMPAIGN_ENDED: campaign cancelled"
        assert not is_deadline_passed(campaign), "ERR_CAMPAIGN_ENDED: deadline passed"

        assert_deposit(payment, amount.native + self._pledge_storage_cost(campaign_id.native, Txn.sender))

        # Upsert the backer's pledge
        key = pledge_key(campaign_id.native, Txn.sender)
        if key in self.pledges:
            existing = self.pledges[key].copy()
            existing.amount = arc4.UInt64(existing.amount.native + amount.native)
            existing.pledged_at = arc4.UInt64(Global.round)
            self.pledges[key] = existing.copy()
        else:
            self.pledges[key] = Pledge(
                amount=amount,
                refunded=arc4.Bool(False),
                pledged_at=arc4.UInt64(Global.round),
            )
            self.backer_counts[campaign_id.native] = (
                self.backer_counts.get(campaign_id.native, default=UInt64(0)) + 1
            )

        campaign.total_pledged = arc4.UInt64(campaign.total_pledged.native + amount.native)
        if is_goal_reached(campaign) and campaign.state.native == STATUS_ACTIVE:
            campaign.state = arc4.UInt64(STATUS_SUCCESSFUL)
        self.campaigns[campaign_id.native] = campaign.copy()

        arc4.emit(PledgeMade(campaign_id, arc4.Address(Txn.sender), amount, campaign.total_pledged))
        return arc4.Bool(True)

    @arc4.abimethod
    def withdraw_funds(self, campaign_id: arc4.UInt64) -> arc4.UInt64:
        """
        Release a successful campaign's funds to its creator.
        Only the creator can withdraw, once, after the deadline.

        Args:
            campaign_id: ID of the campaign

        Returns:
            Amount paid to the creator (total pledged minus platform fee)
        """
        campaign = self._load_campaign(campaign_id.native)

        assert Txn.sender == campaign.creator.native, "ERR_NOT_AUTHORIZED: only the creator can withdraw"
        assert is_deadline_passed(campaign), "ERR_CAMPAIGN_ACTIVE: deadline not passed"
        assert is_goal_reached(campaign), "ERR_GOAL_NOT_REACHED: goal not met"
        assert not campaign.withdrawn.native, "ERR_ALREADY_WITHDRAWN: funds already released"

        ledger = self.fee_ledger.value.copy()
        total = campaign.total_pledged.native
        fee = platform_fee(total, ledger.fee_percentage.native)
        payout = total - fee

        ledger.accrued_fees = arc4.UInt64(ledger.accrued_fees.native + fee)
        self.fee_ledger.value = ledger.copy()

        campaign.withdrawn = arc4.Bool(True)
        campaign.state = arc4.UInt64(STATUS_SUCCESSFUL)
        self.campaigns[campaign_id.native] = campaign.copy()

        # Inner fee is pooled by the caller
        itxn.Payment(
            receiver=campaign.creator.native,
            amount=payout,
            fee=0,
        ).submit()

        arc4.emit(FundsWithdrawn(campaign_id, campaign.creator, arc4.UInt64(payout), arc4.UInt64(fee)))
        return arc4.UInt64(payout)

    @arc4.abimethod
    def refund(self, campaign_id: arc4.UInt64) -> arc4.UInt64:
        """
        Reclaim the caller's pledge from a campaign that missed its goal.

        The campaign's total_pledged is left untouched; refunds are
        tracked on the pledge record only.

        Args:
            campaign_id: ID of the campaign

        Returns:
            Amount refunded
        """
        campaign = self._load_campaign(campaign_id.native)

        key = pledge_key(campaign_id.native, Txn.sender)
        assert key in self.pledges, "ERR_NO_PLEDGE_FOUND: caller has no pledge"
        backer_pledge = self.pledges[key].copy()

        assert is_deadline_passed(campaign), "ERR_CAMPAIGN_ACTIVE: deadline not passed"
        assert not is_goal_reached(campaign), "ERR_GOAL_NOT_REACHED: goal reached, no refunds"
        assert not backer_pledge.refunded.native, "ERR_ALREADY_REFUNDED: pledge already refunded"

        backer_pledge.refunded = arc4.Bool(True)
        self.pledges[key] = backer_pledge.copy()

        campaign.state = arc4.UInt64(STATUS_FAILED)
        self.campaigns[campaign_id.native] = campaign.copy()

        itxn.Payment(
            receiver=Txn.sender,
            amount=backer_pledge.amount.native,
            fee=0,
        ).submit()

        arc4.emit(RefundIssued(campaign_id, arc4.Address(Txn.sender), backer_pledge.amount))
        return backer_pledge.amount

    @arc4.abimethod
    def cancel_campaign(self, campaign_id: arc4.UInt64) -> arc4.Bool:
        """
        Cancel a campaign that has not received any pledge.
        Only the creator can cancel.

        Args:
            campaign_id: ID of the campaign

        Returns:
            True
        """
        campaign = self._load_campaign(campaign_id.native)

        assert Txn.sender == campaign.creator.native, "ERR_NOT_AUTHORIZED: only the creator can cancel"
        backers = self.backer_counts.get(campaign_id.native, default=UInt64(0))
        assert campaign.total_pledged.native == 0 and backers == 0, (
            "ERR_INVALID_AMOUNT: campaign has pledges"
        )

        campaign.state = arc4.UInt64(STATUS_CANCELLED)
        self.campaigns[campaign_id.native] = campaign.copy()

        arc4.emit(CampaignCancelled(campaign_id))
        return arc4.Bool(True)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @arc4.abimethod
    def set_platform_fee(self, fee_percentage: arc4.UInt64) -> arc4.Bool:
        """
        Update the platform fee percentage (0-10). Owner only.

        Args:
            fee_percentage: New fee percentage
        """
        ledger = self.fee_ledger.value.copy()
        assert_owner(ledger)
        assert fee_percentage.native <= MAX_FEE_PCT, "ERR_INVALID_FEE: fee above maximum"

        ledger.fee_percentage = fee_percentage
        self.fee_ledger.value = ledger.copy()

        arc4.emit(PlatformFeeUpdated(fee_percentage))
        return arc4.Bool(True)

    @arc4.abimethod
    def pause_contract(self) -> arc4.Bool:
        """Stop new campaigns from being created. Owner only."""
        return self._set_paused(True)

    @arc4.abimethod
    def unpause_contract(self) -> arc4.Bool:
        """Allow campaign creation again. Owner only."""
        return self._set_paused(False)

    @subroutine
    def _set_paused(self, paused: bool) -> arc4.Bool:
        ledger = self.fee_ledger.value.copy()
        assert_owner(ledger)

        ledger.paused = arc4.Bool(paused)
        self.fee_ledger.value = ledger.copy()

        arc4.emit(PauseChanged(arc4.Bool(paused)))
        return arc4.Bool(True)

    @arc4.abimethod
    def withdraw_platform_fees(self) -> arc4.UInt64:
        """
        Sweep all accrued platform fees to the owner.

        Returns:
            Amount paid out
        """
        ledger = self.fee_ledger.value.copy()
        assert_owner(ledger)

        amount = ledger.accrued_fees.native
        ledger.accrued_fees = arc4.UInt64(0)
        self.fee_ledger.value = ledger.copy()

        if amount > 0:
            itxn.Payment(
                receiver=ledger.owner.native,
                amount=amount,
                fee=0,
            ).submit()

        arc4.emit(PlatformFeesWithdrawn(ledger.owner, arc4.UInt64(amount)))
        return arc4.UInt64(amount)

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    @arc4.abimethod(readonly=True)
    def get_campaign(self, campaign_id: arc4.UInt64) -> Campaign:
        """
        Get campaign details.

        Args:
            campaign_id: ID of the campaign

        Returns:
            The campaign record
        """
        return self._load_campaign(campaign_id.native)

    @arc4.abimethod(readonly=True)
    def get_pledge(self, campaign_id: arc4.UInt64, backer: arc4.Address) -> Pledge:
        """
        Get a backer's cumulative pledge to a campaign.

        Args:
            campaign_id: ID of the campaign
            backer: Backer address

        Returns:
            The pledge record
        """
        key = pledge_key(campaign_id.native, backer.native)
        assert key in self.pledges, "ERR_NO_PLEDGE_FOUND: no pledge for backer"
        return self.pledges[key].copy()

    @arc4.abimethod(readonly=True)
    def get_backer_count(self, campaign_id: arc4.UInt64) -> arc4.UInt64:
        """Number of distinct backers of a campaign."""
        return arc4.UInt64(self.backer_counts.get(campaign_id.native, default=UInt64(0)))

    @arc4.abimethod(readonly=True)
    def get_campaign_progress(self, campaign_id: arc4.UInt64) -> arc4.UInt64:
        """
        Funding progress as a whole percentage of the goal.
        Not capped at 100 for over-funded campaigns.
        """
        campaign = self._load_campaign(campaign_id.native)
        return arc4.UInt64(campaign.total_pledged.native * 100 // campaign.goal.native)

    @arc4.abimethod(readonly=True)
    def is_campaign_successful(self, campaign_id: arc4.UInt64) -> arc4.Bool:
        """True once the goal is reached, regardless of deadline."""
        if campaign_id.native not in self.campaigns:
            return arc4.Bool(False)
        return arc4.Bool(is_goal_reached(self.campaigns[campaign_id.native].copy()))

    @arc4.abimethod(readonly=True)
    def is_campaign_failed(self, campaign_id: arc4.UInt64) -> arc4.Bool:
        """True when the deadline has passed with the goal unmet."""
        if campaign_id.native not in self.campaigns:
            return arc4.Bool(False)
        campaign = self.campaigns[campaign_id.native].copy()
        return arc4.Bool(is_deadline_passed(campaign) and not is_goal_reached(campaign))

    @arc4.abimethod(readonly=True)
    def get_user_campaign_count(self, user: arc4.Address) -> arc4.UInt64:
        return arc4.UInt64(self.user_campaigns.get(user.bytes, default=UInt64(0)))

    @arc4.abimethod(readonly=True)
    def get_campaign_nonce(self) -> arc4.UInt64:
        return arc4.UInt64(self.campaign_nonce.value)

    @arc4.abimethod(readonly=True)
    def get_platform_fee_percentage(self) -> arc4.UInt64:
        return self.fee_ledger.value.fee_percentage

    @arc4.abimethod(readonly=True)
    def is_contract_paused(self) -> arc4.Bool:
        return self.fee_ledger.value.paused

    @arc4.abimethod(readonly=True)
    def get_total_platform_fees(self) -> arc4.UInt64:
        return self.fee_ledger.value.accrued_fees

    @arc4.abimethod(readonly=True)
    def get_campaign_storage_cost(
        self,
        creator: arc4.Address,
        title: arc4.String,
        description: arc4.String,
        metadata_uri: arc4.String,
    ) -> arc4.UInt64:
        """
        Deposit create_campaign expects from `creator` for the given text.
        Only the text fields change the record size.
        """
        campaign = Campaign(
            creator=creator,
            title=title,
            description=description,
            goal=arc4.UInt64(0),
            deadline=arc4.UInt64(0),
            total_pledged=arc4.UInt64(0),
            state=arc4.UInt64(STATUS_ACTIVE),
            metadata_uri=metadata_uri,
            withdrawn=arc4.Bool(False),
            created_at=arc4.UInt64(0),
        )
        return arc4.UInt64(self._campaign_storage_cost(creator.native, campaign.copy()))

    @arc4.abimethod(readonly=True)
    def get_pledge_storage_cost(self, campaign_id: arc4.UInt64, backer: arc4.Address) -> arc4.UInt64:
        """Deposit a pledge from `backer` needs on top of the pledged amount."""
        return arc4.UInt64(self._pledge_storage_cost(campaign_id.native, backer.native))
