"""Resource provisioning and teardown scripts."""
