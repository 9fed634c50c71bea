"""Weighing engine: sole owner of the weighing state of one station."""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from ..domain.filters import StabilityDetector
from ..domain.models import (
    CompletedTransaction,
    ErrorKind,
    Failure,
    StabilityConfig,
    Success,
    WeighInRequest,
    WeighOutRequest,
    WeighingResult,
    is_valid_weight,
)
from ..domain.roles import resolve_weight_roles
from ..domain.state import (
    IDLE,
    Completed,
    Error,
    Idle,
    WeighingIn,
    WeighingOut,
    WeighingState,
    state_name,
    unknown_state,
)
from ..domain.tickets import TicketGenerator
from ..services.event_bus import (
    ERROR_MESSAGE,
    MANUAL_MODE_CHANGED,
    STATE_CHANGED,
    SUCCESS_MESSAGE,
    WEIGHT_UPDATED,
    EventBus,
    Subscriber,
)
from ..services.repository import TransactionRepository

LOGGER = logging.getLogger("weighbridge.engine")

MSG_SESSION_ACTIVE = "Cannot start weighing. Finish or cancel the active transaction first."
MSG_UNSTABLE = "Weight is not stable yet. Wait for it to settle before capturing."
MSG_CAPTURE_BUSY = "A capture is already in progress."


class WeighingEngine:
    """State machine driving the weigh-in / weigh-out cycle.

    Every command returns a :class:`Success` or :class:`Failure`. Expected
    conditions (illegal transition, unstable or insufficient weight) never
    raise and never change the state, so the caller can retry. Repository
    exceptions are caught and reported as ``ErrorKind.UNKNOWN``.

    Observers subscribe to the engine's :class:`EventBus`. Notifications are
    delivered synchronously, in mutation order, on the thread that issued
    the command.
    """

    def __init__(
        self,
        repository: TransactionRepository,
        config: Optional[StabilityConfig] = None,
        *,
        ticket_generator: Optional[TicketGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        event_bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or LOGGER
        self._repository = repository
        self._config = config or StabilityConfig()
        self._clock = clock or datetime.now
        self._tickets = ticket_generator or TicketGenerator(clock=self._clock)
        self._bus = event_bus or EventBus()
        self._detector = StabilityDetector(self._config)

        self._lock = threading.RLock()
        self._capture_lock = threading.Lock()
        self._session = 0

        self._state: WeighingState = IDLE
        self._current_weight = 0.0
        self._is_stable = False
        self._is_manual_mode = False
        self._error_message: Optional[str] = None
        self._success_message: Optional[str] = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> WeighingState:
        with self._lock:
            return self._state

    @property
    def current_weight(self) -> float:
        with self._lock:
            return self._current_weight

    @property
    def is_stable(self) -> bool:
        with self._lock:
            return self._is_stable

    @property
    def is_manual_mode(self) -> bool:
        with self._lock:
            return self._is_manual_mode

    @property
    def error_message(self) -> Optional[str]:
        with self._lock:
            return self._error_message

    @property
    def success_message(self) -> Optional[str]:
        with self._lock:
            return self._success_message

    @property
    def config(self) -> StabilityConfig:
        return self._config

    @property
    def ticket_generator(self) -> TicketGenerator:
        return self._tickets

    def subscribe(self, topic: str, fn: Subscriber) -> None:
        self._bus.subscribe(topic, fn)

    def unsubscribe(self, topic: str, fn: Subscriber) -> None:
        self._bus.unsubscribe(topic, fn)

    # ------------------------------------------------------------------
    def update_weight(self, sample: float) -> WeighingResult[float]:
        """Ingest a sample from the weight source."""
        if not is_valid_weight(sample):
            self.logger.debug("Rejected weight sample %r", sample)
            return Failure(f"Invalid weight sample: {sample!r}", ErrorKind.INVALID_DATA)
        weight = max(0.0, float(sample))
        with self._lock:
            self._current_weight = weight
            if not self._is_manual_mode:
                self._is_stable = self._detector.add_reading(weight)
            self._publish_weight()
        return Success(weight)

    def set_manual_weight(self, sample: float) -> WeighingResult[float]:
        """Operator entered weight; only accepted in manual mode."""
        if not is_valid_weight(sample):
            return Failure(f"Invalid weight: {sample!r}", ErrorKind.INVALID_DATA)
        weight = max(0.0, float(sample))
        with self._lock:
            if not self._is_manual_mode:
                return self._reject("Manual weight entry requires manual mode.")
            self._current_weight = weight
            self._is_stable = True
            self._publish_weight()
        self.logger.info("Manual weight entered: %.1f kg", weight)
        return Success(weight)

    def set_manual_mode(self, enabled: bool) -> WeighingResult[bool]:
        with self._lock:
            self._set_manual_mode(bool(enabled))
            self._detector.reset()
            self._is_stable = False
            state = self._state
            if isinstance(state, (WeighingIn, WeighingOut)):
                self._set_state(replace(state, is_manual=self._is_manual_mode, is_stable=False))
        self.logger.info("Manual mode %s", "enabled" if enabled else "disabled")
        return Success(bool(enabled))

    # ------------------------------------------------------------------
    def start_weigh_in(self, request: WeighInRequest) -> WeighingResult[None]:
        with self._lock:
            current = self._state
            if isinstance(current, WeighingOut):
                return self._reject(MSG_SESSION_ACTIVE)
            if not isinstance(current, (Idle, Completed, Error, WeighingIn)):
                unknown_state(current)
            problem = _validate_ids(request.vehicle_id, request.driver_id, request.product_id)
            if problem:
                return self._reject(problem)

            self._begin_session(request.is_manual)
            self._set_state(
                WeighingIn(
                    vehicle_id=request.vehicle_id,
                    driver_id=request.driver_id,
                    product_id=request.product_id,
                    direction=request.direction,
                    partner_id=request.partner_id,
                    current_weight=self._current_weight,
                    is_stable=False,
                    is_manual=request.is_manual,
                )
            )
        return Success(None)

    def start_weigh_out(self, request: WeighOutRequest) -> WeighingResult[None]:
        with self._lock:
            current = self._state
            if isinstance(current, WeighingIn):
                return self._reject(MSG_SESSION_ACTIVE)
            if not isinstance(current, (Idle, Completed, Error, WeighingOut)):
                unknown_state(current)
            if not (request.ticket_number or "").strip():
                return self._reject("Select an open ticket first.")
            if not is_valid_weight(request.first_weight) or request.first_weight < 0:
                return self._reject(f"Invalid first weight: {request.first_weight!r}")
            problem = _validate_ids(request.vehicle_id, request.driver_id, request.product_id)
            if problem:
                return self._reject(problem)

            self._begin_session(request.is_manual)
            self._set_state(
                WeighingOut(
                    ticket_number=request.ticket_number,
                    first_weight=float(request.first_weight),
                    direction=request.direction,
                    vehicle_id=request.vehicle_id,
                    driver_id=request.driver_id,
                    product_id=request.product_id,
                    partner_id=request.partner_id,
                    current_weight=self._current_weight,
                    is_stable=False,
                    is_manual=request.is_manual,
                )
            )
        return Success(None)

    # ------------------------------------------------------------------
    def capture_weigh_in(self) -> WeighingResult[str]:
        """Lock the current weight as first weight and open the transaction."""
        if not self._capture_lock.acquire(blocking=False):
            return self._reject(MSG_CAPTURE_BUSY)
        try:
            with self._lock:
                current = self._state
                if not isinstance(current, WeighingIn):
                    return self._reject("Not in weigh-in mode.")
                problem = self._check_capture(current.is_manual)
                if problem is not None:
                    return problem
                weight = self._current_weight
                session = self._session
                ticket = self._tickets.generate()

            try:
                self._repository.create_weigh_in(
                    ticket,
                    current.vehicle_id,
                    current.driver_id,
                    current.product_id,
                    current.partner_id,
                    weight,
                    current.is_manual,
                    current.direction,
                )
            except Exception as exc:
                self.logger.exception("Weigh-in for ticket %s could not be stored", ticket)
                return self._persistence_failure(exc)

            with self._lock:
                if not self._finish_capture(session, WeighingIn, IDLE):
                    self.logger.warning("Session replaced while ticket %s was being stored", ticket)
                self._set_success_message(f"Weigh-in saved. Ticket: {ticket}")
            self.logger.info("Weigh-in captured: ticket=%s weight=%.1f kg", ticket, weight)
            return Success(ticket)
        finally:
            self._capture_lock.release()

    def capture_weigh_out(self) -> WeighingResult[CompletedTransaction]:
        """Lock the second weight, resolve gross/tare and close the transaction."""
        if not self._capture_lock.acquire(blocking=False):
            return self._reject(MSG_CAPTURE_BUSY)
        try:
            with self._lock:
                current = self._state
                if not isinstance(current, WeighingOut):
                    return self._reject("Not in weigh-out mode.")
                problem = self._check_capture(current.is_manual)
                if problem is not None:
                    return problem
                second_weight = self._current_weight
                roles = resolve_weight_roles(current.direction, current.first_weight, second_weight)
                net_weight = roles.net
                if net_weight <= 0:
                    return self._reject("Net weight must be greater than zero.")
                session = self._session

            try:
                self._repository.update_weigh_out(current.ticket_number, second_weight, net_weight)
            except Exception as exc:
                self.logger.exception(
                    "Weigh-out for ticket %s could not be stored", current.ticket_number
                )
                return self._persistence_failure(exc)

            completed_at = self._clock()
            transaction = CompletedTransaction(
                ticket_number=current.ticket_number,
                vehicle_id=current.vehicle_id,
                driver_id=current.driver_id,
                product_id=current.product_id,
                partner_id=current.partner_id,
                gross_weight=roles.gross,
                tare_weight=roles.tare,
                net_weight=net_weight,
                direction=current.direction,
                is_manual_entry=current.is_manual,
                completed_at=completed_at,
            )
            with self._lock:
                completed = Completed(
                    ticket_number=current.ticket_number,
                    gross_weight=roles.gross,
                    tare_weight=roles.tare,
                    net_weight=net_weight,
                    direction=current.direction,
                    completed_at=completed_at,
                )
                if not self._finish_capture(session, WeighingOut, completed):
                    self.logger.warning(
                        "Session replaced while ticket %s was being closed", current.ticket_number
                    )
                self._set_success_message(f"Transaction completed. Net: {net_weight:.1f} kg")
            self.logger.info(
                "Weigh-out captured: ticket=%s gross=%.1f tare=%.1f net=%.1f",
                current.ticket_number,
                roles.gross,
                roles.tare,
                net_weight,
            )
            return Success(transaction)
        finally:
            self._capture_lock.release()

    # ------------------------------------------------------------------
    def cancel_operation(self) -> WeighingResult[None]:
        with self._lock:
            self._session += 1
            self._detector.reset()
            self._is_stable = False
            self._set_manual_mode(False)
            self._set_state(IDLE)
        return Success(None)

    def acknowledge_completion(self) -> WeighingResult[None]:
        with self._lock:
            if isinstance(self._state, Completed):
                self._set_state(IDLE)
        return Success(None)

    def clear_error(self) -> WeighingResult[None]:
        with self._lock:
            self._set_error_message(None)
            current = self._state
            if isinstance(current, Error):
                self._set_state(current.previous_state or IDLE)
        return Success(None)

    def clear_success(self) -> None:
        with self._lock:
            self._set_success_message(None)

    def report_error(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        """Suspend operation until :meth:`clear_error` is called.

        Used by collaborators, e.g. the scale service on signal loss.
        """
        with self._lock:
            previous = self._state
            if isinstance(previous, Error):
                previous = previous.previous_state
            self._set_error_message(message)
            self._set_state(Error(message=message, kind=kind, previous_state=previous))
        self.logger.warning("Weighing suspended (%s): %s", kind.value, message)

    # ------------------------------------------------------------------
    def _check_capture(self, is_manual: bool) -> Optional[Failure]:
        if not self._is_stable and not is_manual:
            return Failure(MSG_UNSTABLE, ErrorKind.UNSTABLE_WEIGHT)
        minimum = self._config.minimum_weight_kg
        if self._current_weight < minimum:
            return self._reject(f"Minimum weight is {minimum:g} kg.")
        return None

    def _finish_capture(self, session: int, captured: type, outcome: WeighingState) -> bool:
        """Leave the captured session for ``outcome`` once the record is stored.

        An error reported while the repository call was running stays in
        place; acknowledging it then lands on ``outcome``. Returns ``False``
        when the session was cancelled or replaced in the meantime.
        """
        if self._session != session:
            return False
        state = self._state
        if isinstance(state, captured):
            self._set_state(outcome)
            return True
        if isinstance(state, Error) and isinstance(state.previous_state, captured):
            self._set_state(replace(state, previous_state=outcome))
            return True
        return False

    def _persistence_failure(self, exc: Exception) -> Failure:
        message = f"Could not save the transaction: {exc}" if str(exc) else "Could not save the transaction."
        with self._lock:
            self._set_error_message(message)
        return Failure(message, ErrorKind.UNKNOWN)

    def _reject(self, message: str, kind: ErrorKind = ErrorKind.BUSINESS_RULE_VIOLATION) -> Failure:
        self.logger.info("Command rejected (%s) in %s: %s", kind.value, state_name(self._state), message)
        return Failure(message, kind)

    def _begin_session(self, is_manual: bool) -> None:
        self._session += 1
        self._detector.reset()
        self._is_stable = False
        self._set_manual_mode(is_manual)

    def _publish_weight(self) -> None:
        state = self._state
        if isinstance(state, (WeighingIn, WeighingOut)):
            self._set_state(
                replace(state, current_weight=self._current_weight, is_stable=self._is_stable)
            )
        elif not isinstance(state, (Idle, Completed, Error)):
            unknown_state(state)
        self._bus.publish(WEIGHT_UPDATED, (self._current_weight, self._is_stable))

    def _set_state(self, new_state: WeighingState) -> None:
        previous = self._state
        self._state = new_state
        if type(previous) is not type(new_state):
            self.logger.info("State %s -> %s", state_name(previous), state_name(new_state))
        self._bus.publish(STATE_CHANGED, new_state)

    def _set_manual_mode(self, enabled: bool) -> None:
        if self._is_manual_mode != enabled:
            self._is_manual_mode = enabled
            self._bus.publish(MANUAL_MODE_CHANGED, enabled)

    def _set_error_message(self, message: Optional[str]) -> None:
        self._error_message = message
        self._bus.publish(ERROR_MESSAGE, message)

    def _set_success_message(self, message: Optional[str]) -> None:
        self._success_message = message
        self._bus.publish(SUCCESS_MESSAGE, message)


def _validate_ids(vehicle_id: int, driver_id: int, product_id: int) -> Optional[str]:
    if not vehicle_id or vehicle_id <= 0:
        return "Select a vehicle first."
    if not driver_id or driver_id <= 0:
        return "Select a driver first."
    if not product_id or product_id <= 0:
        return "Select a product first."
    return None


__all__ = ["WeighingEngine"]
