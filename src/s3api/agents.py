import contextlib
import logging


logger = logging.getLogger(__name__)


class AgentSupport:
    """Routes debug traces, errors and perf markers.

    Everything is logged through the stdlib logger of the concrete class's
    module. An externally attached log agent (see ILogAgent) and perf agent
    (see IPerfAgent) receive the same events when present.
    """

    _logger = logger
    log_agent = None
    perf_agent = None

    def attach_log_agent(self, agent):
        self.log_agent = agent

    def attach_perf_agent(self, perf):
        self.perf_agent = perf

    def log_debug(self, level, msg, data=None):
        if data is None:
            self._logger.debug(msg)
        else:
            self._logger.debug("%s %r", msg, data)
        if self.log_agent is not None:
            self.log_agent.debug(level, msg, data)

    def log_error(self, code, msg, data=None):
        self._logger.error("[%s] %s", code, msg)
        if self.log_agent is not None:
            self.log_agent.error(code, msg, data)

    @contextlib.contextmanager
    def track(self, category):
        """Bracket a store call with perf agent begin/end markers."""
        tracker = self.perf_agent.begin(category) if self.perf_agent else None
        try:
            yield
        finally:
            if tracker is not None:
                tracker.end()
