"""
Email notification utilities for AD Provision.

This module sends email notifications for pre-flight failures and for the
summary of runs that had record errors.
"""

import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Any, Optional
from datetime import datetime

logger = logging.getLogger(__name__)

MAX_LISTED_RECORDS = 25


def send_email(subject: str, body: str, config: Dict[str, Any]) -> bool:
    """
    Send email notification using SMTP.

    Args:
        subject: Email subject line
        body: Email body content
        config: Notification configuration dictionary

    Returns:
        True if email sent successfully, False otherwise
    """
    if not config.get('enable_email', False):
        logger.debug("Email notifications disabled")
        return False

    smtp_server = config.get('smtp_server')
    smtp_port = config.get('smtp_port', 587)
    smtp_username = config.get('smtp_username')
    smtp_password = config.get('smtp_password')
    smtp_tls = config.get('smtp_tls', True)

    email_from = config.get('email_from', smtp_username)
    email_to = config.get('email_to', [])

    if not smtp_server:
        logger.error("SMTP server not configured")
        return False

    if not email_to:
        logger.error("No email recipients configured")
        return False

    if isinstance(email_to, str):
        email_to = [email_to]

    logger.debug(f"Sending email to {len(email_to)} recipients via {smtp_server}:{smtp_port}")

    msg = MIMEMultipart()
    msg['From'] = email_from
    msg['To'] = ', '.join(email_to)
    msg['Subject'] = subject
    msg.attach(MIMEText(body, 'plain'))

    try:
        if smtp_port == 465:
            server = smtplib.SMTP_SSL(smtp_server, smtp_port)
        else:
            server = smtplib.SMTP(smtp_server, smtp_port)
            if smtp_tls:
                server.starttls()

        if smtp_username and smtp_password:
            server.login(smtp_username, smtp_password)

        server.sendmail(email_from, email_to, msg.as_string())
        server.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email notification: {e}")
        return False

    logger.info(f"Email notification sent successfully: {subject}")
    return True


def send_failure_notification(
    title: str,
    error_message: str,
    config: Dict[str, Any],
    additional_info: Optional[Dict[str, Any]] = None,
    before_changes: bool = False
) -> bool:
    """
    Send notification for a run that could not start or finish.

    Args:
        title: Failure title/type
        error_message: Error description
        config: Notification configuration
        additional_info: Optional additional context
        before_changes: True if the run stopped before any directory write

    Returns:
        True if notification sent successfully
    """
    if not config.get('email_on_failure', True):
        logger.debug("Failure email notifications disabled")
        return False

    timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    subject = f"AD Provision Alert: {title}"

    body_lines = [
        "AD Provision Failure Report",
        f"Timestamp: {timestamp}",
        "",
        f"Failure Type: {title}",
        f"Error Message: {error_message}",
        ""
    ]

    if additional_info:
        body_lines.append("Additional Information:")
        for key, value in additional_info.items():
            body_lines.append(f"  {key}: {value}")
        body_lines.append("")

    if before_changes:
        body_lines.append("No directory changes were made by this run.")

    body_lines.extend([
        "Please check the application logs for more detailed information.",
        "",
        "This is an automated message from AD Provision."
    ])

    return send_email(subject, '\n'.join(body_lines), config)


def send_directory_connection_failure(
    error_message: str,
    config: Dict[str, Any],
    retry_count: int = 0
) -> bool:
    """Send notification for a failed bind to the directory."""
    additional_info = {
        'Component': 'Directory Connection',
        'Retry Attempts': retry_count,
        'Impact': 'Run aborted before any record was processed'
    }
    return send_failure_notification("Directory Connection Failed", error_message, config, additional_info,
                                     before_changes=True)


def format_summary_body(summary) -> str:
    """Render a RunSummary as the plain-text body of a report email."""
    runtime_seconds = summary.runtime_seconds
    if runtime_seconds > 60:
        runtime_str = f"{int(runtime_seconds // 60)}m {runtime_seconds % 60:.1f}s"
    else:
        runtime_str = f"{runtime_seconds:.2f} seconds"

    body_lines = [
        "AD Provision Summary Report",
        f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "Overall Statistics:",
        f"  Total runtime: {runtime_str}",
        f"  Records: {summary.total}",
        f"  Processed: {summary.processed}",
        f"  Skipped: {summary.skipped}",
        f"  Errors: {summary.errored}",
        ""
    ]

    problems = summary.problem_outcomes()
    if problems:
        body_lines.append("Skipped and errored records:")
        for outcome in problems[:MAX_LISTED_RECORDS]:
            body_lines.append(f"  {outcome.account or '<unnamed>'}: "
                              f"{outcome.classification.value} ({outcome.reason.code})")
        if len(problems) > MAX_LISTED_RECORDS:
            body_lines.append(f"  ... and {len(problems) - MAX_LISTED_RECORDS} more")
        body_lines.append("")

    body_lines.append("This is an automated message from AD Provision.")
    return '\n'.join(body_lines)


def send_run_summary(summary, config: Dict[str, Any]) -> bool:
    """
    Send the run summary.

    Runs with errors are reported when email_on_failure is set; every run is
    reported when email_on_success is set.
    """
    if summary.has_errors:
        if not config.get('email_on_failure', True):
            logger.debug("Failure email notifications disabled")
            return False
        subject = f"AD Provision: Completed with {summary.errored} errors"
    else:
        if not config.get('email_on_success', False):
            logger.debug("Success email notifications disabled")
            return False
        subject = "AD Provision: Successful Completion"

    return send_email(subject, format_summary_body(summary), config)


def test_notification_config(config: Dict[str, Any]) -> bool:
    """
    Test email notification configuration by sending a test email.

    Args:
        config: Notification configuration to test

    Returns:
        True if test email sent successfully
    """
    recipients = config.get('email_to', [])
    if isinstance(recipients, str):
        recipients = [recipients]

    test_body = "\n".join([
        "This is a test email from AD Provision.",
        "",
        "If you receive this message, your email notification configuration is working correctly.",
        "",
        f"- SMTP Server: {config.get('smtp_server', 'not configured')}",
        f"- SMTP Port: {config.get('smtp_port', 'not configured')}",
        f"- From Address: {config.get('email_from', 'not configured')}",
        f"- Recipients: {', '.join(recipients)}",
    ])

    result = send_email("AD Provision: Configuration Test", test_body, config)
    if result:
        logger.info("Test notification sent successfully")
    else:
        logger.error("Test notification failed")
    return result
