from blinker import Namespace

_signals = Namespace()

# Sent after a dose-log upsert is committed: sender=app, user_id, medication_id, date, status.
dose_logged = _signals.signal("dose-logged")

# Sent after a medication is created, edited or deleted: sender=app, user_id, medication_id, action.
medications_changed = _signals.signal("medications-changed")
