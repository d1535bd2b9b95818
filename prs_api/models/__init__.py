from .canvass import CanvassApprover, CanvassRequisition
from .delivery_receipts import DeliveryReceipt
from .invoice_reports import InvoiceReport
from .non_requisitions import NonRequisition, NonRequisitionApprover
from .payment_requests import PaymentRequest, PaymentRequestApprover
from .purchase_orders import PurchaseOrder, PurchaseOrderApprover
from .reference import Company, Department, Project, User
from .requisitions import Requisition, RequisitionApprover

__all__ = [
    "CanvassApprover",
    "CanvassRequisition",
    "Company",
    "DeliveryReceipt",
    "Department",
    "InvoiceReport",
    "NonRequisition",
    "NonRequisitionApprover",
    "PaymentRequest",
    "PaymentRequestApprover",
    "Project",
    "PurchaseOrder",
    "PurchaseOrderApprover",
    "Requisition",
    "RequisitionApprover",
    "User",
]
