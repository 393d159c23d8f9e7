"""Sources of raw readings: command-line tools, sysfs, psutil and Redfish."""
