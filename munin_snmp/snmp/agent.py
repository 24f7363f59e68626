"""
SNMP agent: pysnmp engine serving the metric subtree over UDP (v1/v2c).
"""

import logging
from typing import List, Optional

from pysnmp.carrier.asyncio.dgram import udp
from pysnmp.entity import config, engine
from pysnmp.entity.rfc3413 import context
from pysnmp.error import PySnmpError

from ..errors import RegistrationError
from .oid import Oid, format_oid
from .responders import MetricGetNextResponder, MetricGetResponder

logger = logging.getLogger(__name__)

SECURITY_AREA = "munin-area"


class SnmpAgent:
    """
    Owns the SnmpEngine, its transport and the GET / GETNEXT responders.

    register() must succeed before run(); run() blocks in the transport
    dispatcher until it is interrupted.
    """

    def __init__(self, handler, base_oid: Oid, host: str = "0.0.0.0",
                 port: int = 161, community: str = "public"):
        """
        Args:
            handler: QueryHandler answering the subtree
            base_oid: Subtree root served by this agent
            host: UDP listen address
            port: UDP listen port
            community: Read community (SNMPv1 / v2c)
        """
        self.handler = handler
        self.base_oid = tuple(base_oid)
        self.host = host
        self.port = port
        self.community = community
        self.snmp_engine: Optional[engine.SnmpEngine] = None
        self.snmp_context = None
        self.responders: List = []

    def register(self) -> None:
        """
        Create the engine and register the responders for the subtree.

        Raises:
            RegistrationError: Transport or engine setup failed
        """
        try:
            self.snmp_engine = engine.SnmpEngine()

            config.add_transport(
                self.snmp_engine,
                udp.DOMAIN_NAME,
                udp.UdpTransport().open_server_mode((self.host, self.port))
            )

            config.add_v1_system(self.snmp_engine, SECURITY_AREA, self.community)
            for secModel in (1, 2):  # SNMPv1, SNMPv2c
                config.add_vacm_user(
                    self.snmp_engine, secModel, SECURITY_AREA, 'noAuthNoPriv',
                    readSubTree=self.base_oid, writeSubTree=()
                )

            self.snmp_context = context.SnmpContext(self.snmp_engine)
            self.responders = [
                MetricGetResponder(self.snmp_engine, self.snmp_context, self.handler),
                MetricGetNextResponder(self.snmp_engine, self.snmp_context, self.handler),
            ]
        except (PySnmpError, OSError) as e:
            self.close()
            raise RegistrationError(
                f"Cannot register {format_oid(self.base_oid)} on "
                f"udp/{self.host}:{self.port}: {e}"
            )

        logger.info(
            f"Registered subtree {format_oid(self.base_oid)} "
            f"on udp/{self.host}:{self.port}"
        )

    def run(self) -> None:
        """Block in the request processing loop."""
        if self.snmp_engine is None:
            raise RegistrationError("Agent not registered")
        self.snmp_engine.transport_dispatcher.job_started(1)
        logger.info("Waiting for SNMP requests")
        self.snmp_engine.transport_dispatcher.run_dispatcher()

    def close(self) -> None:
        """Stop accepting requests and release the transport."""
        if self.snmp_engine is None:
            return
        dispatcher = self.snmp_engine.transport_dispatcher
        if dispatcher is not None:
            try:
                dispatcher.close_dispatcher()
            except (PySnmpError, OSError) as e:
                logger.warning(f"Error closing SNMP dispatcher: {e}")
        self.snmp_engine = None
        self.responders = []
        logger.info("SNMP agent stopped")
