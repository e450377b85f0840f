#!/usr/bin/env python3
"""AWS CDK entrypoint for the EC2 server stacks.

One stack is synthesized per environment (EC2-Dev, EC2-Stg, EC2-Prod). Pass
``-c strategy=AdoptExisting`` to bind the stacks to the resources already
deployed in each environment instead of creating new ones, ``-c
environments=dev`` to limit the stacks synthesized, and ``-c detect_drift=true``
to compare adopted resources against their current state. Adopting reads the
live account (needs credentials) and writes a ``cdk import`` resource mapping
per stack next to the synthesized templates.
Remaining settings come from the environment or a local ``.env`` file.
"""
import os

import aws_cdk as cdk
from aws_cdk import Environment
from dotenv import load_dotenv

from adoption import catalog
from adoption.import_mapping import write_import_mapping
from adoption.models import AdoptionStrategy
from adoption.state import Ec2StateReader
from common.config import DeploymentConfig, parse_strategy
from common.logger import set_log_level
from ec2_server.ec2_server_stack import Ec2ServerStack

load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"))

app = cdk.App()

strategy = parse_strategy(app.node.try_get_context("strategy"))
environments = app.node.try_get_context("environments") or ",".join(catalog.CATALOG.names())
detect_drift = str(app.node.try_get_context("detect_drift")).lower() == "true"

stacks = []
for name in environments.split(","):
    config = DeploymentConfig.from_env(name.strip(), strategy=strategy)
    set_log_level(config.log_level)
    state_reader = None
    if strategy is AdoptionStrategy.ADOPT_EXISTING:
        state_reader = Ec2StateReader(region=config.region)

    stacks.append(
        Ec2ServerStack(
            app,
            config.stack_name,
            config=config,
            mapping=catalog.lookup(config.environment),
            state_reader=state_reader,
            detect_drift=detect_drift,
            env=Environment(account=config.account, region=config.region),
            description=config.description,
        )
    )

assembly = app.synth()

for stack in stacks:
    if stack.import_mapping:
        write_import_mapping(stack.import_mapping, assembly.directory, stack.stack_name)
