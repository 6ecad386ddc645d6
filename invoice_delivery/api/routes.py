"""API routes: create invoices, trigger delivery, report status and serve documents."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse, Response

from invoice_delivery.api.deps import get_delivery_service
from invoice_delivery.models.invoice import InvoiceCreate
from invoice_delivery.queue.base import Job
from invoice_delivery.services.delivery_service import (
    CreateInvoiceResult,
    DeliveryService,
    InvoiceStatusReport,
    SendRequestResult,
)
from invoice_delivery.utils.logger import logger

router = APIRouter(tags=["invoices"])


@router.post("/invoices", status_code=status.HTTP_201_CREATED, response_model=CreateInvoiceResult)
async def create_invoice(
    data: InvoiceCreate,
    service: DeliveryService = Depends(get_delivery_service),
) -> CreateInvoiceResult:
    """Create an invoice; delivery is queued automatically when auto-send is enabled."""
    result = await service.create_invoice(data, triggered_by="api")
    logger.info(f"create-invoice | id={result.invoice.id} number={result.invoice.invoice_number}")
    return result


@router.post(
    "/invoices/{invoice_id}/send",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SendRequestResult,
)
async def send_invoice(
    invoice_id: int,
    triggered_by: str = Query("api", max_length=100),
    service: DeliveryService = Depends(get_delivery_service),
) -> SendRequestResult:
    """Queue a manual delivery; a recent successful email short-circuits the request."""
    return await service.request_send(invoice_id, triggered_by=triggered_by)


@router.get("/invoices/{invoice_id}/status", response_model=InvoiceStatusReport)
async def invoice_status(
    invoice_id: int,
    service: DeliveryService = Depends(get_delivery_service),
) -> InvoiceStatusReport:
    """Aggregate send status plus every send attempt, newest first."""
    return service.get_status(invoice_id)


@router.get("/invoices/{invoice_id}/pdf")
async def invoice_pdf(
    invoice_id: int,
    token: str = Query("", description="Signed access token from the invoice link"),
    service: DeliveryService = Depends(get_delivery_service),
) -> Response:
    """Serve the latest invoice document to holders of a valid link."""
    access = await service.open_artifact(invoice_id, token)
    if access.redirect_url:
        return RedirectResponse(access.redirect_url, status_code=status.HTTP_302_FOUND)
    return Response(
        content=access.content or b"",
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{access.file_name}"'},
    )


@router.get("/jobs/{job_id}", response_model=Job)
async def job_status(
    job_id: str,
    service: DeliveryService = Depends(get_delivery_service),
) -> Job:
    job = await service.get_job(job_id)
    if job is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job


@router.get("/unsubscribe")
async def unsubscribe(
    token: str = Query(..., min_length=1),
    service: DeliveryService = Depends(get_delivery_service),
) -> dict:
    """Opt a customer out of invoice email using the link from a previous message."""
    if not service.unsubscribe(token):
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Unknown unsubscribe link")
    return {"status": "unsubscribed"}
