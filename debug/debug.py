import csv
import inspect
import pprint

# Debug level constants
ERROR      = 0
WARNING    = 1
INFO       = 2
VERBOSE    = 3
VVERBOSE   = 4
VVVERBOSE  = 5

# Current threshold (only messages ≤ this level will print)
debug_level = INFO

def set_debug_level(level):
    """Set the global debug_level. Accepts one of ERROR…VVVERBOSE."""
    global debug_level
    debug_level = level

def get_debug_level():
    return debug_level

def debug(level, msg, *args, **kwargs):
    """
    Print a debug message if level ≤ current debug_level.

    Usage:
        debug(INFO,    "Simulating {} years from age {}", years, age)
        debug(VVERBOSE, "Resolved scenario: {}", scenario)
    """
    if level > debug_level:
        return

    # Find caller info
    frame = inspect.currentframe().f_back
    func_name = frame.f_code.co_name
    line_no   = frame.f_lineno

    # Format message
    try:
        text = msg.format(*args, **kwargs)
    except (IndexError, KeyError, ValueError):
        text = msg

    # Prefix level name
    level_name = {
        ERROR:     "ERROR    ",
        WARNING:   "WARNING  ",
        INFO:      "INFO     ",
        VERBOSE:   "VERBOSE  ",
        VVERBOSE:  "VVERBOSE ",
        VVVERBOSE: "VVVERBOSE"
    }.get(level, str(level))

    print(f"[{level_name}] {func_name} [{line_no}]: {text}")

def dump_data(data):
    """
    Pretty‐print a Python structure (e.g. a plan or projection dict),
    but only if debug_level ≥ VVERBOSE.
    """
    # Only dump at very high verbosity
    if debug_level < VVERBOSE:
        return

    # Figure out who called us
    frame = inspect.currentframe().f_back
    func_name = frame.f_code.co_name
    line_no   = frame.f_lineno

    pretty = pprint.pformat(data, indent=2, width=120)

    print(f"DUMP {func_name} [{line_no}]:\n{pretty}")

def dump_life_events_to_csv(plan_name, ledger, csv_path):
    """
    Write out one row per life event (plus a Baseline row) with the event's
    signed amount, the net adjustment at its age and the running total of
    all adjustments up to and including that event.

    `ledger` is anything iterable yielding objects with id, age, amount,
    description, event_type and signed_amount (a LifeEventLedger).
    """
    debug(INFO, "dumping life events to {}", csv_path)

    events = list(ledger)
    net_at_age = {}
    for ev in events:
        net_at_age[ev.age] = net_at_age.get(ev.age, 0.0) + ev.signed_amount

    header = ["age", "event_id", "description", "event_type",
              "amount", "signed_amount", "net_at_age", "running_total"]

    with open(csv_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)

        # --- Baseline row ---
        writer.writerow(["", "", f"Baseline ({plan_name})", "", "", "", "", 0.0])

        running = 0.0
        for ev in sorted(events, key=lambda e: e.age):
            running += ev.signed_amount
            writer.writerow([
                ev.age, ev.id, ev.description, ev.event_type,
                ev.amount, ev.signed_amount, net_at_age[ev.age], running,
            ])

    debug(VVERBOSE,
          "Dumped {} events (+baseline) to {}",
          len(events), csv_path)
