"""User-facing message catalog.

Toast titles/descriptions and error messages shown to schedule editors.
Thai is the default locale of the grid; English is kept alongside for
operators and logs.
"""

DEFAULT_LOCALE = "th"

CATALOG: dict[str, dict[str, str]] = {
    # Toast titles
    "create_success_title": {
        "th": "สร้างตารางสำเร็จ",
        "en": "Schedule created",
    },
    "update_success_title": {
        "th": "แก้ไขตารางสำเร็จ",
        "en": "Schedule updated",
    },
    "conflict_resolved_title": {
        "th": "อัปเดตตารางสำเร็จ",
        "en": "Schedule replaced",
    },
    "delete_success_title": {
        "th": "ลบตารางสำเร็จ",
        "en": "Schedule deleted",
    },
    "error_title": {
        "th": "เกิดข้อผิดพลาด",
        "en": "Something went wrong",
    },
    # Toast descriptions
    "create_success": {
        "th": "สร้าง {name} แล้ว",
        "en": "Created {name}",
    },
    "update_success": {
        "th": "แก้ไข {name} แล้ว",
        "en": "Updated {name}",
    },
    "conflict_resolved": {
        "th": "แก้ไขตารางของ {name} ในช่วงเวลานี้",
        "en": "Replaced the {name} booking in this slot",
    },
    "delete_success": {
        "th": "ลบ {name} แล้ว",
        "en": "Deleted {name}",
    },
    "default_entry_name": {
        "th": "ตาราง",
        "en": "schedule",
    },
    # Errors
    "fetch_failed": {
        "th": "ไม่สามารถโหลดตารางได้ กรุณาลองใหม่",
        "en": "Could not load the schedule, please try again",
    },
    "create_failed": {
        "th": "สร้างตารางไม่สำเร็จ: {detail}",
        "en": "Could not create schedule: {detail}",
    },
    "update_failed": {
        "th": "แก้ไขตารางไม่สำเร็จ: {detail}",
        "en": "Could not update schedule: {detail}",
    },
    "delete_failed": {
        "th": "ลบตารางไม่สำเร็จ: {detail}",
        "en": "Could not delete schedule: {detail}",
    },
    "slot_occupied": {
        "th": "ช่วงเวลาใหม่มีตารางอยู่แล้ว",
        "en": "The new time slot is already occupied",
    },
    "instructor_booked": {
        "th": "ผู้สอนคนนี้มีตารางในช่วงเวลานี้อยู่แล้ว (ข้อมูลอาจไม่ตรงกัน กรุณารีเฟรชหน้า)",
        "en": "This instructor is already booked in this slot (data may be out of date, please refresh)",
    },
    "conflict_reload": {
        "th": "มีการขัดแย้งในช่วงเวลานี้ กรุณาโหลดหน้าใหม่และลองอีกครั้ง",
        "en": "This slot has a conflict, please reload and try again",
    },
    "invalid_range": {
        "th": "ข้อมูลไม่ถูกต้อง กรุณาตรวจสอบช่วงเวลาและวัน",
        "en": "Invalid data, please check the day and time range",
    },
    "invalid_slot": {
        "th": "ช่วงเวลาไม่ถูกต้อง: {value}",
        "en": "Invalid time slot: {value}",
    },
    "slot_overflow": {
        "th": "ช่วงเวลาเกินเวลาปิดของตาราง (21:00) กรุณาลดจำนวนชั่วโมง",
        "en": "The booking runs past the end of the day (21:00), please shorten it",
    },
    "invalid_input": {
        "th": "ข้อมูล {field} ไม่ถูกต้อง",
        "en": "Invalid value for {field}",
    },
    "missing_field": {
        "th": "กรุณาระบุ {field}",
        "en": "{field} is required",
    },
    "not_found": {
        "th": "ไม่พบตาราง",
        "en": "Schedule not found",
    },
    "stale_week": {
        "th": "สัปดาห์ที่แสดงถูกเปลี่ยนแล้ว",
        "en": "The displayed week has changed",
    },
}


def message(key: str, locale: str = DEFAULT_LOCALE, **params: object) -> str:
    """Render a catalog message, falling back to the default locale."""
    entry = CATALOG[key]
    template = entry.get(locale) or entry[DEFAULT_LOCALE]
    return template.format(**params) if params else template
