def iso(dt):
    return dt.isoformat() if dt else None

def pre_enrollment_json(pre):
    return {
        "id": pre.id, "student_id": pre.student_id, "period_id": pre.period_id,
        "status": pre.status, "notes": pre.notes,
        "requests": [{"course_unit_id": r.course_unit_id, "shift_id": r.shift_id,
                      "section": r.section} for r in pre.requests],
    }

def line_json(line):
    final = line.final_grade
    return {
        "id": line.id, "course_unit_id": line.course_unit_id,
        "course_unit": line.course_unit.name, "assignment_id": line.assignment_id,
        "attempt_number": line.attempt_number, "status": line.status,
        "final_grade": final.value if final else None,
    }

def enrollment_json(enrollment, with_lines=True):
    data = {
        "id": enrollment.id, "code": enrollment.code,
        "student_id": enrollment.student_id, "period_id": enrollment.period_id,
        "cycle": enrollment.cycle, "shift_id": enrollment.shift_id,
        "condition": enrollment.condition, "status": enrollment.status,
        "notes": enrollment.notes, "enrolled_at": iso(enrollment.enrolled_at),
    }
    if with_lines:
        data["lines"] = [line_json(ln) for ln in enrollment.lines]
    return data

def criterion_json(c):
    return {"id": c.id, "name": c.name, "weight": c.weight, "order": c.order}

def score_json(s):
    return {"id": s.id, "line_id": s.line_id, "criterion_id": s.criterion_id,
            "criterion": s.criterion.name if s.criterion else None,
            "weight": s.weight, "value": s.value, "annotation": s.annotation,
            "recorded_by_id": s.recorded_by_id}

def final_grade_json(fg):
    return {"line_id": fg.line_id, "value": fg.value, "verdict": fg.verdict,
            "computed_at": iso(fg.computed_at), "closed_at": iso(fg.closed_at)}

def closure_json(closure):
    a = closure.assignment
    return {"id": closure.id, "code": closure.code, "status": closure.status,
            "assignment_id": closure.assignment_id,
            "course_unit": a.course_unit.name, "section": a.section,
            "teacher": a.teacher.name, "period": a.period.name,
            "closed_at": iso(closure.closed_at), "closed_by_id": closure.closed_by_id}
