"""Price monitoring: peak tracking, drawdown and the monitoring cycle."""
