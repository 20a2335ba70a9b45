"""
Fixed calendar constants for ics invites.

Centralizes the product id, the single supported timezone block and the
default reminder used by every rendered document.
"""

import datetime


PRODID = "-//hacksw/handcal//NONSGML v1.0//EN"

# Consumers serve rendered documents with this content type
CONTENT_TYPE = "text/calendar"

# The only timezone invites are emitted in
TZID = "Asia/Singapore"

VCALENDAR_HEADER = (
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    f"PRODID:{PRODID}",
    "CALSCALE:GREGORIAN",
)

VTIMEZONE_BLOCK = (
    "BEGIN:VTIMEZONE",
    f"TZID:{TZID}",
    f"TZURL:https://tzurl.org/zoneinfo-outlook/{TZID}",
    f"X-LIC-LOCATION:{TZID}",
    "BEGIN:STANDARD",
    "TZOFFSETFROM:+0800",
    "TZOFFSETTO:+0800",
    "TZNAME:CST",
    "DTSTART:19700101T000000",
    "END:STANDARD",
    "END:VTIMEZONE",
)

# Reminder fires this long before the event starts
ALARM_TRIGGER = datetime.timedelta(minutes=-15)

# Natural-language dates are read as naive local time; time-only and
# yearless text resolve within the current day and year
DATEPARSER_SETTINGS = {
    "RETURN_AS_TIMEZONE_AWARE": False,
}
