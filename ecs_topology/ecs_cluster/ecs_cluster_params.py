#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

from troposphere.ecs import CapacityProviderStrategyItem

RES_KEY = "x-cluster"
FARGATE_PROVIDER = "FARGATE"
FARGATE_SPOT_PROVIDER = "FARGATE_SPOT"
FARGATE_PROVIDERS = [FARGATE_PROVIDER, FARGATE_SPOT_PROVIDER]


def get_default_strategy(use_spot: bool) -> list:
    """
    Default capacity provider strategy. With spot, the first task and 2/3 of the others run on FARGATE_SPOT
    """
    if use_spot:
        return [
            CapacityProviderStrategyItem(
                Weight=2, Base=1, CapacityProvider=FARGATE_SPOT_PROVIDER
            ),
            CapacityProviderStrategyItem(Weight=1, CapacityProvider=FARGATE_PROVIDER),
        ]
    return [CapacityProviderStrategyItem(Weight=1, CapacityProvider=FARGATE_PROVIDER)]
