from __future__ import annotations

from prs_api.services import ref_numbers


def test_requisition_draft_and_final_forms() -> None:
    parts = dict(company_code="12", rs_letter="AA", rs_number="00001", draft_rs_number="00042")
    draft = ref_numbers.requisition_ref(status="rs_draft", **parts)
    final = ref_numbers.requisition_ref(status="submitted", **parts)
    assert draft == "RS-TMP-12AA00042"
    assert final == "RS-12AA00001"
    assert "-TMP-" not in final


def test_canvass_is_draft_until_numbered() -> None:
    assert (
        ref_numbers.canvass_ref(company_code="12", cs_letter="AA", cs_number=None, draft_cs_number="7")
        == "CS-TMP-12AA7"
    )
    assert (
        ref_numbers.canvass_ref(company_code="12", cs_letter="AA", cs_number="3", draft_cs_number="7")
        == "CS-12AA3"
    )


def test_purchase_order_has_no_draft_form() -> None:
    assert ref_numbers.purchase_order_ref(company_code="12", po_letter="AB", po_number="00005") == "PO-12AB00005"


def test_delivery_and_invoice_refs() -> None:
    assert ref_numbers.delivery_receipt_ref(is_draft=True, dr_number=None, draft_dr_number="9") == "RR-TMP-9"
    assert ref_numbers.delivery_receipt_ref(is_draft=False, dr_number="100", draft_dr_number="9") == "RR-100"
    assert ref_numbers.invoice_ref(is_draft=True, ir_number=None, ir_draft_number="4") == "IR-TMP-4"
    assert ref_numbers.invoice_ref(is_draft=False, ir_number="55", ir_draft_number="4") == "IR-55"


def test_payment_request_draft_skips_letter() -> None:
    parts = dict(company_code="12", pr_letter="AA", pr_number="8", draft_pr_number="3")
    assert ref_numbers.payment_request_ref(is_draft=True, **parts) == "VR-TMP-123"
    assert ref_numbers.payment_request_ref(is_draft=False, **parts) == "VR-12AA8"


def test_non_requisition_refs() -> None:
    parts = dict(non_rs_letter="N", non_rs_number="11", draft_non_rs_number="2")
    assert ref_numbers.non_requisition_ref(status="draft", **parts) == "NR-TMP-N2"
    assert ref_numbers.non_requisition_ref(status="approved", **parts) == "NR-N11"


def test_missing_parts_render_empty() -> None:
    assert ref_numbers.requisition_ref(
        company_code=None, rs_letter="AA", rs_number=None, draft_rs_number=None, status="submitted"
    ) == "RS-AA"
