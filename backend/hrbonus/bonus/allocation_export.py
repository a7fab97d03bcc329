"""項目獎金分配結果匯出 Excel（與前端分配明細表格欄位一致）。"""
import io
from typing import Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side

from hrbonus.models import BonusAllocation, BonusPool, Employee


EXCEL_HEADERS = [
    "員工編號", "員工", "角色", "角色權重", "績效係數", "參與比例", "計算權重", "獎金", "預設角色", "狀態", "備註",
]

STATUS_LABELS = {
    "calculated": "已計算",
    "approved": "已審批",
    "rejected": "已退回",
    "distributed": "已發放",
    "deleted": "已刪除",
}


def _write_headers(ws, row_idx: int) -> None:
    thin = Side(style="thin")
    header_font = Font(bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for col, h in enumerate(EXCEL_HEADERS, start=1):
        cell = ws.cell(row=row_idx, column=col, value=h)
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = Border(top=thin, bottom=thin, left=thin, right=thin)


def _write_allocation_row(ws, row_idx: int, a: BonusAllocation, employee: Optional[Employee]) -> None:
    ws.cell(row=row_idx, column=1, value=employee.employee_no if employee else "")
    ws.cell(row=row_idx, column=2, value=employee.name if employee else f"#{a.employee_id}")
    ws.cell(row=row_idx, column=3, value=a.role_id)
    ws.cell(row=row_idx, column=4, value=float(a.role_weight))
    ws.cell(row=row_idx, column=5, value=float(a.performance_coeff))
    ws.cell(row=row_idx, column=6, value=float(a.participation_ratio))
    ws.cell(row=row_idx, column=7, value=float(a.calculated_weight))
    ws.cell(row=row_idx, column=8, value=float(a.bonus_amount))
    ws.cell(row=row_idx, column=9, value="是" if a.default_role_assigned else "")
    ws.cell(row=row_idx, column=10, value=STATUS_LABELS.get(a.status, a.status))
    ws.cell(row=row_idx, column=11, value=a.remark or "")


def build_allocation_excel(
    pool: BonusPool,
    allocations: List[BonusAllocation],
    employees: Dict[int, Employee],
    sheet_name: str = "獎金分配明細",
) -> bytes:
    """
    第一列：獎金池摘要（項目、期間、總額、已分配）；第二列起為表頭與明細。
    """
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name[:31]  # Excel 表單名稱長度限制

    total_allocated = sum(float(a.bonus_amount) for a in allocations)
    ws.cell(row=1, column=1, value=f"項目 {pool.project_id}｜期間 {pool.period}")
    ws.cell(row=1, column=3, value="獎金總額")
    ws.cell(row=1, column=4, value=float(pool.total_amount))
    ws.cell(row=1, column=5, value="已分配")
    ws.cell(row=1, column=6, value=total_allocated)

    _write_headers(ws, 2)
    for row_idx, a in enumerate(allocations, start=3):
        _write_allocation_row(ws, row_idx, a, employees.get(a.employee_id))
    for col in range(1, len(EXCEL_HEADERS) + 1):
        ws.column_dimensions[ws.cell(row=2, column=col).column_letter].width = 14

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()
