"""
Order lifecycle manager. Tracks placed limit orders and held positions
across scan cycles.

Manages:
- Sizing and placing entries (spread buy-then-sell, parity long / short)
- Polling the venue for fills and promoting filled buys into positions
- Realizing P&L when sells fill
- Placing exit orders for held positions
- Cancelling orders older than the TTL
- Rebuilding positions from trade history at startup

All state lives on the instance. Single-writer: the governor drives every
method from one scan at a time.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from client.platform import (
    ExecutionVenue,
    MarketDataSource,
    OrderNotFound,
    OrderRejected,
    VenueError,
    is_dry_run_order_id,
)
from executor.ledger import Ledger
from executor.order_state import OrderState, is_terminal_state, state_from_remote, transition_to
from executor.safety import SafetyCheckFailed, verify_tradeable
from executor.sizing import entry_size, exit_size, meets_min_order_value, set_size
from executor.tick_size import DEFAULT_TICK, markup_price
from monitor.stats import RunStats
from scanner.models import Opportunity, OpportunityKind, Side

logger = logging.getLogger(__name__)

_HISTORY_SIZE = 200
# Consecutive "not found" answers before a live order is given up on.
_MAX_NOT_FOUND = 3


@dataclass
class ActiveOrder:
    """A placed limit order awaiting a terminal state."""
    order_id: str
    token_id: str
    market: str
    side: Side
    price: float
    size: int
    placed_at: float
    placed_tick: int
    target_exit_price: float = 0.0  # buys: where to sell once filled
    entry_price: float = 0.0        # sells: what the shares cost, for P&L
    hold_to_resolution: bool = False
    parity_set: str = ""            # long legs: id shared by every leg of one set
    set_tokens: tuple[str, ...] = ()
    state: OrderState = OrderState.PLACED
    final_state: OrderState | None = None
    not_found_checks: int = 0

    @property
    def is_simulated(self) -> bool:
        return is_dry_run_order_id(self.order_id)

    @property
    def notional(self) -> float:
        return self.price * self.size

    def age_ms(self, now: float) -> float:
        return round((now - self.placed_at) * 1000.0, 3)


@dataclass
class Position:
    """Shares held and awaiting an exit order."""
    token_id: str
    market: str
    size: float
    entry_price: float = 0.0        # 0 = unknown (recovered from history)
    target_exit_price: float = 0.0  # 0 = price from the book
    acquired_at: float = field(default_factory=time.time)
    hold_to_resolution: bool = False
    sync_attempts: int = 0


@dataclass(frozen=True)
class LifecycleConfig:
    max_order_size_usd: float = 5.0
    min_order_value_usd: float = 1.0
    min_lot_size: int = 1
    order_ttl_ms: int = 300_000
    dry_run: bool = True
    simulated_fill_ticks: int = 2
    balance_sync_retries: int = 2
    exit_markup: float = 0.02
    tick_size: float = DEFAULT_TICK

    @classmethod
    def from_config(cls, cfg) -> LifecycleConfig:
        return cls(
            max_order_size_usd=cfg.max_order_size_usd,
            min_order_value_usd=cfg.min_order_value_usd,
            min_lot_size=cfg.min_lot_size,
            order_ttl_ms=cfg.order_ttl_ms,
            dry_run=cfg.dry_run,
            balance_sync_retries=cfg.balance_sync_retries,
            tick_size=float(cfg.tick_size),
        )


class OrderLifecycle:

    def __init__(
        self,
        venue: ExecutionVenue,
        ledger: Ledger,
        market_data: MarketDataSource,
        stats: RunStats,
        cfg: LifecycleConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._venue = venue
        self._ledger = ledger
        self._market_data = market_data
        self._stats = stats
        self._cfg = cfg or LifecycleConfig()
        self._clock = clock
        self._orders: dict[str, ActiveOrder] = {}
        self._positions: dict[str, Position] = {}
        self._history: deque[ActiveOrder] = deque(maxlen=_HISTORY_SIZE)
        self._set_seq = itertools.count(1)
        # Long sets missing a leg. Their filled legs are unwound, not held.
        self._broken_sets: set[str] = set()
        self.tick = 0

    # -- views ------------------------------------------------------------

    @property
    def open_orders(self) -> list[ActiveOrder]:
        return list(self._orders.values())

    @property
    def positions(self) -> list[Position]:
        return list(self._positions.values())

    @property
    def history(self) -> list[ActiveOrder]:
        """Recently finished orders, oldest first."""
        return list(self._history)

    def get_order(self, order_id: str) -> ActiveOrder | None:
        return self._orders.get(order_id)

    def get_position(self, token_id: str) -> Position | None:
        return self._positions.get(token_id)

    @property
    def open_buy_count(self) -> int:
        return sum(1 for o in self._orders.values() if o.side == Side.BUY)

    @property
    def open_sell_count(self) -> int:
        return sum(1 for o in self._orders.values() if o.side == Side.SELL)

    @property
    def active_exposure(self) -> float:
        """Total $ tied up in open buy orders."""
        return sum(o.notional for o in self._orders.values() if o.side == Side.BUY)

    def is_engaged(self, opportunity: Opportunity) -> bool:
        """True if an open order (or, except for shorts, a position) already touches this market."""
        tokens = set(opportunity.snapshot.token_ids)
        if any(o.token_id in tokens for o in self._orders.values()):
            return True
        if opportunity.kind != OpportunityKind.SHORT:
            return any(t in self._positions for t in tokens)
        return False

    # -- tracking ---------------------------------------------------------

    def _track(self, order: ActiveOrder) -> ActiveOrder:
        self._orders[order.order_id] = order
        return order

    def _finish(self, order: ActiveOrder, state: OrderState) -> None:
        """Move an order to its terminal state and stop tracking it. Exactly once per order."""
        order.state = transition_to(order.state, state)
        order.final_state = state
        del self._orders[order.order_id]
        self._history.append(order)
        order.state = transition_to(order.state, OrderState.UNTRACKED)

        if state == OrderState.CANCELLED:
            self._stats.orders_cancelled += 1
        elif state == OrderState.EXPIRED:
            self._stats.orders_expired += 1

    def _add_position(self, token_id: str, market: str, size: float, entry_price: float,
                      target_exit_price: float, hold_to_resolution: bool = False) -> Position:
        existing = self._positions.get(token_id)
        if existing is not None:
            combined = existing.size + size
            if combined > 0 and existing.entry_price > 0 and entry_price > 0:
                existing.entry_price = (existing.entry_price * existing.size + entry_price * size) / combined
            elif entry_price > 0:
                existing.entry_price = entry_price
            existing.size = combined
            existing.target_exit_price = target_exit_price or existing.target_exit_price
            existing.hold_to_resolution = existing.hold_to_resolution and hold_to_resolution
            existing.sync_attempts = 0
            return existing

        position = Position(
            token_id=token_id,
            market=market,
            size=size,
            entry_price=entry_price,
            target_exit_price=target_exit_price,
            acquired_at=self._clock(),
            hold_to_resolution=hold_to_resolution,
        )
        self._positions[token_id] = position
        return position

    async def _submit(
        self,
        token_id: str,
        market: str,
        side: Side,
        price: float,
        size: int,
        target_exit_price: float = 0.0,
        entry_price: float = 0.0,
        hold_to_resolution: bool = False,
        parity_set: str = "",
        set_tokens: tuple[str, ...] = (),
    ) -> ActiveOrder:
        """Place one limit order and start tracking it. Raises OrderRejected."""
        result = await self._venue.place_limit_order(token_id, side, price, size, self._cfg.dry_run)
        if not result.success or not result.order_id:
            self._stats.orders_rejected += 1
            raise OrderRejected(f"{side.value} {market[:40]} @ {price:.3f} x {size}: {result.error or 'no order id'}")

        order = self._track(ActiveOrder(
            order_id=result.order_id,
            token_id=token_id,
            market=market,
            side=side,
            price=price,
            size=size,
            placed_at=self._clock(),
            placed_tick=self.tick,
            target_exit_price=target_exit_price,
            entry_price=entry_price,
            hold_to_resolution=hold_to_resolution,
            parity_set=parity_set,
            set_tokens=set_tokens,
        ))
        if side == Side.BUY:
            self._stats.orders_placed += 1
        else:
            self._stats.sell_orders_placed += 1
        logger.info(
            "%s order placed: %s @ %.3f x %d ($%.2f) -> %s",
            side.value, market[:45], price, size, price * size, order.order_id,
        )
        return order

    # -- entries ----------------------------------------------------------

    async def place_entry(self, opportunity: Opportunity) -> list[ActiveOrder]:
        """
        Size and place the orders for one opportunity.

        Raises SafetyCheckFailed with the reason when nothing should be
        placed, OrderRejected when the venue refuses a placement.
        """
        verify_tradeable(opportunity)
        if opportunity.kind == OpportunityKind.BUY_THEN_SELL:
            return [await self._enter_spread(opportunity)]
        if opportunity.kind == OpportunityKind.LONG:
            return await self._enter_parity_long(opportunity)
        return await self._enter_parity_short(opportunity)

    async def _enter_spread(self, opportunity: Opportunity) -> ActiveOrder:
        snap = opportunity.snapshot
        token_id = snap.token_ids[0]
        bid, ask = snap.best_bid, snap.best_ask

        capital = await self._ledger.available_capital(self.open_orders)
        logger.info(
            "USDC: $%.2f total, $%.2f in orders, $%.2f available",
            capital.total, capital.committed, capital.available,
        )
        if capital.available <= 0 or capital.available < self._cfg.min_order_value_usd:
            raise SafetyCheckFailed(f"Insufficient capital: ${capital.available:.2f} available")

        shares = entry_size(self._cfg.max_order_size_usd, capital.available, bid, self._cfg.min_lot_size)
        if shares <= 0 or not meets_min_order_value(bid, shares, self._cfg.min_order_value_usd):
            raise SafetyCheckFailed(
                f"Order value ${bid * shares:.2f} below minimum ${self._cfg.min_order_value_usd:.2f}"
            )

        return await self._submit(
            token_id, snap.question, Side.BUY, bid, shares, target_exit_price=ask,
        )

    async def _enter_parity_long(self, opportunity: Opportunity) -> list[ActiveOrder]:
        """Buy one share of every outcome per set. The set redeems for 1.0 at resolution."""
        snap = opportunity.snapshot
        set_price = snap.total_price

        capital = await self._ledger.available_capital(self.open_orders)
        sets = set_size(self._cfg.max_order_size_usd, capital.available, set_price, self._cfg.min_lot_size)
        if sets <= 0:
            raise SafetyCheckFailed(
                f"Insufficient capital for one set: ${capital.available:.2f} available, set costs ${set_price:.3f}"
            )
        for price in snap.outcome_prices:
            if not meets_min_order_value(price, sets, self._cfg.min_order_value_usd):
                raise SafetyCheckFailed(
                    f"Leg value ${price * sets:.2f} below minimum ${self._cfg.min_order_value_usd:.2f}"
                )

        set_id = f"{snap.market_id}#{next(self._set_seq)}"
        placed: list[ActiveOrder] = []
        for i, (token_id, price) in enumerate(zip(snap.token_ids, snap.outcome_prices)):
            try:
                placed.append(await self._submit(
                    token_id, f"{snap.question} [{i}]", Side.BUY, price, sets,
                    hold_to_resolution=True, parity_set=set_id, set_tokens=snap.token_ids,
                ))
            except OrderRejected:
                if placed:
                    logger.warning(
                        "Parity long on %s partially placed (%d/%d legs); resting legs expire via TTL",
                        snap.market_id, len(placed), len(snap.token_ids),
                    )
                    self._break_set(set_id, snap.token_ids)
                raise
        return placed

    async def _enter_parity_short(self, opportunity: Opportunity) -> list[ActiveOrder]:
        """Sell held shares of every outcome for more than the set redeems for."""
        snap = opportunity.snapshot
        held = []
        for token_id in snap.token_ids:
            shares = await self._ledger.available_shares(token_id, self.open_orders)
            held.append(shares.available)
        sets = exit_size(min(held), min(held), self._cfg.min_lot_size)
        if sets <= 0:
            raise SafetyCheckFailed(f"No inventory to sell a full set on {snap.market_id}")

        placed: list[ActiveOrder] = []
        for i, (token_id, price) in enumerate(zip(snap.token_ids, snap.outcome_prices)):
            position = self._positions.get(token_id)
            entry = position.entry_price if position else 0.0
            placed.append(await self._submit(
                token_id, f"{snap.question} [{i}]", Side.SELL, price, sets, entry_price=entry,
            ))
            if position is not None:
                position.size -= sets
                if position.size < self._cfg.min_lot_size:
                    del self._positions[token_id]
        return placed

    # -- reconciliation ---------------------------------------------------

    async def reconcile_fills(self) -> list[ActiveOrder]:
        """
        Advance one tick and check every open order for a terminal status.
        Returns the orders that filled.
        """
        self.tick += 1
        if not self._orders:
            return []
        logger.info("Checking %d active orders for fills...", len(self._orders))

        filled: list[ActiveOrder] = []
        for order in list(self._orders.values()):
            if order.is_simulated:
                if self.tick - order.placed_tick >= self._cfg.simulated_fill_ticks:
                    logger.info("[DRY RUN] Simulating fill for %s", order.market[:45])
                    self._on_filled(order)
                    filled.append(order)
                continue

            try:
                remote = await self._venue.get_order(order.order_id)
            except OrderNotFound:
                order.not_found_checks += 1
                if order.not_found_checks >= _MAX_NOT_FOUND:
                    logger.warning(
                        "Order %s unknown to venue after %d checks, treating as cancelled",
                        order.order_id, order.not_found_checks,
                    )
                    self._on_closed(order, OrderState.CANCELLED)
                else:
                    logger.warning("Order %s not found on venue (check %d)", order.order_id, order.not_found_checks)
                continue
            except VenueError as e:
                logger.warning("Failed to check order %s: %s", order.order_id, e)
                continue

            order.not_found_checks = 0
            state = state_from_remote(remote.status)
            if state == OrderState.FILLED:
                self._on_filled(order)
                filled.append(order)
            elif is_terminal_state(state):
                logger.info("Order %s: %s", state.value.upper(), order.market[:45])
                self._on_closed(order, state)
        return filled

    def _on_filled(self, order: ActiveOrder) -> None:
        self._finish(order, OrderState.FILLED)
        realized = 0.0
        if order.is_simulated:
            self._ledger.record_simulated_fill(order.side, order.token_id, order.price, order.size)

        if order.side == Side.BUY:
            self._add_position(
                order.token_id, order.market, order.size,
                entry_price=order.price,
                target_exit_price=order.target_exit_price,
                hold_to_resolution=order.hold_to_resolution and order.parity_set not in self._broken_sets,
            )
            logger.info(
                "BUY FILLED: %s x %d @ %.3f, exit target %.3f",
                order.market[:45], order.size, order.price, order.target_exit_price,
            )
        else:
            realized = (order.price - order.entry_price) * order.size
            self._stats.record_realized(realized)
            logger.info("SELL FILLED: %s x %d @ %.3f, P&L $%.4f", order.market[:45], order.size, order.price, realized)

        self._stats.record_fill(
            order.order_id, order.token_id, order.market, order.side.value,
            order.price, order.size, realized, order.is_simulated,
        )
        self._forget_set(order.parity_set)

    def _on_closed(self, order: ActiveOrder, state: OrderState) -> None:
        """
        Cancelled or expired. Shares behind an unfilled sell need an exit
        again. An unfilled long leg breaks its set: the other legs are no
        longer hedged, so they are sold instead of held to resolution.
        """
        self._finish(order, state)
        if order.side == Side.SELL:
            self._add_position(order.token_id, order.market, order.size,
                               entry_price=order.entry_price, target_exit_price=0.0)
        elif order.parity_set:
            self._break_set(order.parity_set, order.set_tokens)
            self._forget_set(order.parity_set)

    def _break_set(self, set_id: str, tokens: tuple[str, ...]) -> None:
        self._broken_sets.add(set_id)
        for token_id in tokens:
            position = self._positions.get(token_id)
            if position is not None and position.hold_to_resolution:
                position.hold_to_resolution = False
                logger.warning("Parity set %s incomplete, unwinding %s", set_id, position.market[:45])

    def _forget_set(self, set_id: str) -> None:
        """Drop a broken set once none of its legs are still open."""
        if set_id and not any(o.parity_set == set_id for o in self._orders.values()):
            self._broken_sets.discard(set_id)

    # -- exits ------------------------------------------------------------

    async def _exit_price(self, position: Position) -> float | None:
        if position.target_exit_price > 0:
            return position.target_exit_price

        book = await self._market_data.get_orderbook(position.token_id)
        if book is None:
            logger.info("No order book for %s, skipping", position.token_id[:20])
            return None
        if book.best_ask is not None and book.best_ask.price > 0:
            return book.best_ask.price
        if book.best_bid is not None and book.best_bid.price > 0:
            # No ask: sell a little above the bid to capture part of the spread
            return markup_price(book.best_bid.price, self._cfg.exit_markup, self._cfg.tick_size)
        logger.info("Empty order book for %s, skipping", position.token_id[:20])
        return None

    async def place_exits(self) -> list[ActiveOrder]:
        """Place a sell for every position that is not held to resolution."""
        pending = [p for p in self._positions.values() if not p.hold_to_resolution]
        if not pending:
            return []
        logger.info("Placing SELL orders for %d positions...", len(pending))

        placed: list[ActiveOrder] = []
        for position in pending:
            price = await self._exit_price(position)
            if price is None:
                continue

            shares = await self._ledger.available_shares(position.token_id, self.open_orders)
            size = exit_size(position.size, shares.available, self._cfg.min_lot_size)
            logger.info(
                "Shares for %s: %.0f total, %.0f in orders, %.0f available",
                position.token_id[:15], shares.total, shares.committed, shares.available,
            )
            if size < self._cfg.min_lot_size:
                self._handle_unsellable(position, shares.committed)
                continue

            try:
                order = await self._submit(
                    position.token_id, position.market, Side.SELL, price, size,
                    entry_price=position.entry_price,
                )
            except OrderRejected as e:
                logger.warning("SELL failed: %s", e)
                continue
            # The sell order now owns the exit.
            del self._positions[position.token_id]
            placed.append(order)
        return placed

    def _handle_unsellable(self, position: Position, committed: float) -> None:
        if committed >= position.size:
            logger.info("Position %s already covered by open sells, dropping", position.market[:45])
            del self._positions[position.token_id]
            return
        if position.sync_attempts < self._cfg.balance_sync_retries:
            position.sync_attempts += 1
            self._ledger.force_refresh(position.token_id)
            logger.info(
                "Venue balance for %s not yet synced, retrying (%d/%d)",
                position.market[:45], position.sync_attempts, self._cfg.balance_sync_retries,
            )
            return
        logger.warning("Insufficient available shares for %s, dropping position", position.market[:45])
        del self._positions[position.token_id]

    # -- cancellation -----------------------------------------------------

    async def cancel_stale(self) -> list[str]:
        """Cancel orders older than the TTL. A failed cancel stays tracked for the next tick."""
        now = self._clock()
        stale = [o for o in self._orders.values() if o.age_ms(now) > self._cfg.order_ttl_ms]
        if not stale:
            return []
        logger.info("Cancelling %d stale orders (>%ds old)...", len(stale), self._cfg.order_ttl_ms // 1000)

        cancelled: list[str] = []
        for order in stale:
            if not order.is_simulated:
                try:
                    ok = await self._venue.cancel_order(order.order_id)
                except VenueError as e:
                    logger.warning("Cancel failed for %s, will retry: %s", order.order_id, e)
                    continue
                if not ok:
                    logger.warning("Cancel not confirmed for %s, will retry", order.order_id)
                    continue
            logger.info("Cancelled stale order: %s (age=%.0fs)", order.market[:45], order.age_ms(now) / 1000)
            self._on_closed(order, OrderState.CANCELLED)
            cancelled.append(order.order_id)
        return cancelled

    async def cancel_all(self) -> int:
        """Cancel every tracked order. Used on shutdown."""
        if not self._orders:
            return 0
        closing = list(self._orders.values())
        if any(not o.is_simulated for o in closing):
            try:
                remote_count = await self._venue.cancel_all_orders()
            except VenueError as e:
                logger.error("Cancel-all failed, live orders may still rest on the venue: %s", e)
                closing = [o for o in closing if o.is_simulated]
            else:
                logger.info("Venue cancelled %d orders", remote_count)
        count = 0
        for order in closing:
            self._on_closed(order, OrderState.CANCELLED)
            count += 1
        logger.info("Cancelled %d tracked orders on shutdown", count)
        return count

    # -- startup ----------------------------------------------------------

    async def recover_positions(self, wallet_address: str | None = None) -> int:
        """
        Rebuild positions from trade history: every token this wallet bought
        as maker and still holds at least one lot of. Entry and target are
        unknown (0), so exits price from the book.
        """
        wallet = (wallet_address or self._venue.wallet_address or "").lower()
        try:
            trades = await self._venue.get_trades()
        except VenueError as e:
            logger.warning("Could not load trade history, no positions recovered: %s", e)
            return 0

        token_ids: list[str] = []
        for trade in trades:
            for fill in trade.maker_orders:
                if fill.maker_address == wallet and fill.side == Side.BUY and fill.token_id:
                    if fill.token_id not in token_ids:
                        token_ids.append(fill.token_id)

        recovered = 0
        for token_id in token_ids:
            if token_id in self._positions:
                continue
            try:
                balance = await self._venue.get_token_balance(token_id)
            except VenueError as e:
                logger.warning("Balance check failed for %s: %s", token_id[:20], e)
                continue
            size = exit_size(balance, balance, self._cfg.min_lot_size)
            if size < self._cfg.min_lot_size:
                continue
            self._add_position(token_id, f"Token {token_id[:12]}...", size, 0.0, 0.0)
            recovered += 1
        logger.info("Loaded %d positions to sell", recovered)
        return recovered
