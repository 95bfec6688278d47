"""
check_jvm_deadlocks

Monitoring plugin reporting whether a running JVM has deadlocked threads.
"""
