"""
pysnmp command responders backed by the QueryHandler.

GET and GETNEXT only; SET is never registered so the engine rejects it.
"""

import logging
from typing import List, Sequence, Tuple

from pysnmp.entity.rfc3413 import cmdrsp
from pysnmp.proto.api import v2c

from .oid import format_oid

logger = logging.getLogger(__name__)

# SNMP error-status genErr
GEN_ERR = 5


def answer_get(handler, var_binds: Sequence) -> List[Tuple]:
    """
    Build GET response var-binds.

    Missing objects are answered with noSuchObject, values as OCTET STRING.
    """
    rsp = []
    for oid, _ in var_binds:
        value = handler.handle_get(tuple(oid))
        if value is None:
            rsp.append((oid, v2c.NoSuchObject()))
        else:
            rsp.append((oid, v2c.OctetString(value.encode('utf-8'))))
    return rsp


def answer_get_next(handler, var_binds: Sequence) -> List[Tuple]:
    """
    Build GETNEXT response var-binds.

    An exhausted subtree is answered with endOfMibView on the requested OID.
    """
    rsp = []
    for oid, _ in var_binds:
        answer = handler.handle_get_next(tuple(oid))
        if answer is None:
            rsp.append((oid, v2c.EndOfMibView()))
        else:
            next_oid, value = answer
            rsp.append((v2c.ObjectIdentifier(next_oid), v2c.OctetString(value.encode('utf-8'))))
    return rsp


class _MetricResponderMixin:
    """Shared request handling: build var-binds, answer genErr on failure."""

    operation = "?"

    def _answer(self, var_binds):
        raise NotImplementedError

    def handle_management_operation(self, snmpEngine, stateReference, contextName, PDU):
        rspPDU = v2c.apiPDU.get_response(PDU)
        req = ()

        try:
            req = v2c.apiPDU.get_varbinds(PDU)
            rsp = self._answer(req)
        except Exception as e:
            oids = ", ".join(format_oid(tuple(oid)) for oid, _ in req)
            logger.exception(f"{self.operation} {oids or '?'} failed: {e}")
            v2c.apiPDU.set_error_status(rspPDU, GEN_ERR)
            v2c.apiPDU.set_error_index(rspPDU, 1)
            v2c.apiPDU.set_varbinds(rspPDU, req)
        else:
            v2c.apiPDU.set_error_status(rspPDU, 0)
            v2c.apiPDU.set_varbinds(rspPDU, rsp)

        self.send_pdu(snmpEngine, stateReference, rspPDU)


class MetricGetResponder(_MetricResponderMixin, cmdrsp.GetCommandResponder):
    """Answers GetRequest PDUs."""

    operation = "GET"

    def __init__(self, snmpEngine, snmpContext, handler):
        super().__init__(snmpEngine, snmpContext)
        self.handler = handler

    def _answer(self, var_binds):
        return answer_get(self.handler, var_binds)


class MetricGetNextResponder(_MetricResponderMixin, cmdrsp.NextCommandResponder):
    """Answers GetNextRequest PDUs."""

    operation = "GETNEXT"

    def __init__(self, snmpEngine, snmpContext, handler):
        super().__init__(snmpEngine, snmpContext)
        self.handler = handler

    def _answer(self, var_binds):
        return answer_get_next(self.handler, var_binds)
