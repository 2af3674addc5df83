"""Push notifier tests: dedup window, FCM delivery, dismissal."""
