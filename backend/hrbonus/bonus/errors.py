"""項目獎金錯誤分類：NotFound / Validation / Conflict / Internal。
status_code 供 API 層對應 HTTP 狀態碼；訊息需可直接操作（含狀態、成員 id、狀態統計等）。"""


class BonusError(Exception):
    """項目獎金錯誤基底"""
    status_code = 500


class BonusNotFoundError(BonusError):
    """獎金池或關聯資料不存在"""
    status_code = 404


class BonusValidationError(BonusError, ValueError):
    """資料或狀態不符合計算/編輯條件"""
    status_code = 400


class BonusConflictError(BonusError):
    """同一獎金池已有計算進行中，或資料重複"""
    status_code = 409


class BonusInternalError(BonusError):
    """落表失敗等內部錯誤；整批已回滾"""
    status_code = 500
