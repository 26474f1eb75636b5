"""Core building blocks shared across FlowPay: config, errors, logging, types."""
