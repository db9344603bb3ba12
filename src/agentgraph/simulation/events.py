"""
Event bus for simulation notifications.

Listeners subscribe either to one simulation or to every simulation. They
may be plain callables or coroutine functions; a failing listener is logged
and never interrupts the run.
"""

import inspect
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from .types import SimulationEvent, SimulationEventType

logger = logging.getLogger(__name__)

ALL_SIMULATIONS = "*"

Listener = Callable[[SimulationEvent], object]


class SimulationEventBus:
    """
    Routes simulation events to subscribed listeners.

    Keeps a history of emitted events, and drops a listener after it has
    failed ``max_listener_errors`` times.
    """

    def __init__(self, max_listener_errors: int = 5):
        self.events: List[SimulationEvent] = []
        self.listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._listener_errors: Dict[str, int] = defaultdict(int)
        self._max_listener_errors = max_listener_errors

    async def emit(self, event: SimulationEvent) -> None:
        """Deliver ``event`` to the listeners of its simulation, then to global listeners."""
        self.events.append(event)

        for key in (event.simulation_id, ALL_SIMULATIONS):
            for listener in list(self.listeners.get(key, [])):
                try:
                    outcome = listener(event)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    listener_id = f"{key}:{id(listener)}"
                    self._listener_errors[listener_id] += 1
                    logger.error(f"Error in simulation listener for {event.type.value}: {e}")

                    if self._listener_errors[listener_id] >= self._max_listener_errors:
                        logger.warning(
                            f"Removing failing simulation listener after {self._max_listener_errors} errors"
                        )
                        self.unsubscribe(listener, None if key == ALL_SIMULATIONS else key)

    def subscribe(self, listener: Listener, simulation_id: Optional[str] = None) -> None:
        """
        Subscribe to events.

        Args:
            listener: Callable or coroutine function taking a SimulationEvent
            simulation_id: Simulation to listen to; None for every simulation
        """
        key = simulation_id or ALL_SIMULATIONS
        if listener not in self.listeners[key]:
            self.listeners[key].append(listener)
            logger.debug(f"Subscribed simulation listener to {key}")

    def unsubscribe(self, listener: Listener, simulation_id: Optional[str] = None) -> None:
        key = simulation_id or ALL_SIMULATIONS
        if key in self.listeners and listener in self.listeners[key]:
            self.listeners[key].remove(listener)
            logger.debug(f"Unsubscribed simulation listener from {key}")

    def clear_listeners(self, simulation_id: Optional[str] = None) -> None:
        """Clear the listeners of one simulation, or every listener."""
        if simulation_id:
            self.listeners.pop(simulation_id, None)
        else:
            self.listeners.clear()
            self._listener_errors.clear()

    def get_event_count(self, event_type: Optional[SimulationEventType] = None) -> int:
        if event_type:
            return sum(1 for event in self.events if event.type == event_type)
        return len(self.events)

    def get_listener_count(self, simulation_id: Optional[str] = None) -> int:
        if simulation_id:
            return len(self.listeners.get(simulation_id, []))
        return sum(len(listeners) for listeners in self.listeners.values())
