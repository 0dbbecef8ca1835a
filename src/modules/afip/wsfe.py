"""WSFE client: last authorized voucher lookup and CAE issuance."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

import httpx

from src.exceptions import (
    AfipRejectionException,
    InvoicingServiceUnreachableException,
    SoapFaultException,
)
from src.modules.afip.constants import SERVICE_CONCEPTS, SOAP12_ENVELOPE_NS, WSFE_CONTENT_TYPE, WSFE_NS
from src.modules.afip.sales_point_lock import SalesPointLock
from src.modules.afip.schemas import AuthTicket, IssuedVoucher, VoucherAuthorization, VoucherRequest
from src.modules.afip.soap import (
    build_envelope,
    children_local,
    fault_message,
    find_local,
    find_text,
    parse_xml,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class TicketProvider(Protocol):
    async def get_ticket(self) -> AuthTicket: ...


def _afip_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def _amount(value: Decimal) -> str:
    return str(Decimal(value).quantize(CENTS))


def build_voucher_detail(request: VoucherRequest) -> dict[str, Any]:
    """Map a request onto ``FECAEDetRequest`` in schema element order."""
    if request.voucher_from is None or request.voucher_to is None:
        raise ValueError("voucher_from and voucher_to must be set before submission")

    detail: dict[str, Any] = {
        "Concepto": request.concept,
        "DocTipo": request.doc_tipo,
        "DocNro": request.doc_nro,
        "CbteDesde": request.voucher_from,
        "CbteHasta": request.voucher_to,
        "CbteFch": _afip_date(request.voucher_date),
        "ImpTotal": _amount(request.total),
        "ImpTotConc": _amount(request.non_taxed),
        "ImpNeto": _amount(request.net),
        "ImpOpEx": _amount(request.exempt),
        "ImpTrib": _amount(request.other_taxes),
        "ImpIVA": _amount(request.vat),
    }
    if request.concept in SERVICE_CONCEPTS:
        detail["FchServDesde"] = _afip_date(request.service_from or request.voucher_date)
        detail["FchServHasta"] = _afip_date(request.service_to or request.voucher_date)
        detail["FchVtoPago"] = _afip_date(request.payment_due or request.voucher_date)
    detail["MonId"] = request.currency_id
    detail["MonCotiz"] = str(request.currency_rate)
    detail["CondicionIVAReceptorId"] = request.recipient_vat_condition
    if request.vat_rates:
        detail["Iva"] = {
            "AlicIva": [
                {"Id": rate.id, "BaseImp": _amount(rate.base_amount), "Importe": _amount(rate.amount)}
                for rate in request.vat_rates
            ]
        }
    return detail


def _raise_for_errors(result: ET.Element) -> None:
    errors = children_local(find_local(result, "Errors"), "Err")
    if errors:
        first = errors[0]
        raise AfipRejectionException(
            find_text(first, "Code") or "?", find_text(first, "Msg") or "Unspecified error"
        )


def parse_authorization(result: ET.Element) -> VoucherAuthorization:
    """Read CAE and its due date from a ``FECAESolicitarResult`` element."""
    _raise_for_errors(result)

    cae = find_text(result, "CAE")
    if not cae:
        observations = children_local(find_local(result, "Observaciones"), "Obs")
        if observations:
            first = observations[0]
            raise AfipRejectionException(
                find_text(first, "Code") or "?", find_text(first, "Msg") or "Observed without CAE"
            )
        raise AfipRejectionException(
            find_text(result, "Resultado") or "R", "Voucher rejected without CAE"
        )

    due = find_text(result, "CAEFchVto")
    try:
        cae_expires_on = datetime.strptime(due or "", "%Y%m%d").date()
    except ValueError as exc:
        raise SoapFaultException(f"Invalid CAEFchVto {due!r}") from exc
    return VoucherAuthorization(cae=cae, cae_expires_on=cae_expires_on)


class InvoiceWireClient:
    def __init__(
        self,
        *,
        wsfe_url: str,
        cuit: str,
        tickets: TicketProvider,
        http_client: httpx.AsyncClient,
        lock: SalesPointLock | None = None,
    ) -> None:
        self.wsfe_url = wsfe_url
        self.cuit = cuit
        self.tickets = tickets
        self.http_client = http_client
        self.lock = lock or SalesPointLock()

    async def _call(self, operation: str, fields: dict[str, Any]) -> ET.Element:
        ticket = await self.tickets.get_ticket()
        body = {
            "Auth": {"Token": ticket.token, "Sign": ticket.sign, "Cuit": self.cuit},
            **fields,
        }
        envelope = build_envelope(SOAP12_ENVELOPE_NS, WSFE_NS, operation, body)

        try:
            response = await self.http_client.post(
                self.wsfe_url, content=envelope, headers={"Content-Type": WSFE_CONTENT_TYPE}
            )
        except httpx.TransportError as exc:
            raise InvoicingServiceUnreachableException(f"WSFE {operation} unreachable: {exc}") from exc

        if response.status_code >= 400 and "Fault" not in response.text:
            raise InvoicingServiceUnreachableException(
                f"WSFE {operation} returned HTTP {response.status_code}"
            )

        root = parse_xml(response.content, f"WSFE {operation} response")
        fault = fault_message(root)
        if fault is not None:
            raise SoapFaultException(f"WSFE {operation} fault: {fault}")

        result = find_local(root, f"{operation}Result")
        if result is None:
            raise SoapFaultException(f"WSFE response has no {operation}Result")
        return result

    async def get_last_voucher_number(self, sales_point: int, voucher_type: int) -> int:
        result = await self._call(
            "FECompUltimoAutorizado", {"PtoVta": sales_point, "CbteTipo": voucher_type}
        )
        _raise_for_errors(result)
        number = find_text(result, "CbteNro")
        return int(number) if number else 0

    async def issue_voucher(self, request: VoucherRequest) -> VoucherAuthorization:
        fields = {
            "FeCAEReq": {
                "FeCabReq": {
                    "CantReg": 1,
                    "PtoVta": request.sales_point,
                    "CbteTipo": request.voucher_type,
                },
                "FeDetReq": {"FECAEDetRequest": build_voucher_detail(request)},
            }
        }
        result = await self._call("FECAESolicitar", fields)
        return parse_authorization(result)

    async def issue_next_voucher(self, request: VoucherRequest) -> IssuedVoucher:
        """Authorize the next number in the (sales point, type) sequence."""
        async with self.lock.hold(request.sales_point, request.voucher_type):
            last = await self.get_last_voucher_number(request.sales_point, request.voucher_type)
            number = last + 1
            authorization = await self.issue_voucher(
                request.model_copy(update={"voucher_from": number, "voucher_to": number})
            )

        logger.info(
            "Issued voucher %04d-%08d type %d CAE %s",
            request.sales_point, number, request.voucher_type, authorization.cae,
        )
        return IssuedVoucher(
            sales_point=request.sales_point,
            voucher_type=request.voucher_type,
            voucher_number=number,
            voucher_date=request.voucher_date,
            cae=authorization.cae,
            cae_expires_on=authorization.cae_expires_on,
        )
