"""AWS service interactions (STS, EC2, IAM) and the AWS provisioning backend."""
