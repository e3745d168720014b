# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to test the subnets calculation and the network entity.
"""

from pytest import fixture, raises

from ecs_topology.exceptions import (
    ConstraintViolation,
    CrossNetworkReference,
    SubnetCapacityError,
)
from ecs_topology.topology import Topology
from ecs_topology.vpc.vpc_maths import get_az_index, get_subnet_layers
from ecs_topology.vpc.vpc_params import PRIVATE_LAYER, PUBLIC_LAYER


@fixture
def topology():
    return Topology("test", environment="dev")


def test_subnet_layers():
    layers = get_subnet_layers("10.0.0.0/16", 2, 24)
    assert layers[PUBLIC_LAYER] == ["10.0.0.0/24", "10.0.1.0/24"]
    assert layers[PRIVATE_LAYER] == ["10.0.2.0/24", "10.0.3.0/24"]

    layers = get_subnet_layers("192.168.0.0/22", 3, 26)
    assert layers[PUBLIC_LAYER] == [
        "192.168.0.0/26",
        "192.168.0.64/26",
        "192.168.0.128/26",
    ]
    assert layers[PRIVATE_LAYER] == [
        "192.168.0.192/26",
        "192.168.1.0/26",
        "192.168.1.64/26",
    ]


def test_subnet_capacity():
    """
    A /24 holds 4 /26 subnets, not enough for 3 AZs
    """
    with raises(SubnetCapacityError):
        get_subnet_layers("10.0.0.0/24", 3, 26)
    with raises(SubnetCapacityError):
        get_subnet_layers("10.0.0.0/24", 2, 20)
    with raises(SubnetCapacityError):
        get_subnet_layers("10.0.0.0/16", 2, 29)
    assert len(get_subnet_layers("10.0.0.0/24", 2, 26)[PRIVATE_LAYER]) == 2


def test_invalid_cidrs():
    for cidr in ["10.0.0.0/33", "10.0.0.1/16", "10.0.0.0/8", "not-a-cidr"]:
        with raises(ConstraintViolation):
            get_subnet_layers(cidr, 2, 24)


def test_az_index():
    assert get_az_index(3) == ["a", "b", "c"]
    for azs in [0, 7, "2"]:
        with raises(ConstraintViolation):
            get_az_index(azs)


def test_network(topology):
    network = topology.declare_network("main", "10.0.0.0/16", 2, subnet_mask=24)
    assert [subnet.CidrBlock for subnet in network.public_subnets] == [
        "10.0.0.0/24",
        "10.0.1.0/24",
    ]
    assert [subnet.CidrBlock for subnet in network.private_subnets] == [
        "10.0.2.0/24",
        "10.0.3.0/24",
    ]
    assert len(network.nat_gateways) == 2
    for title in [
        "MainNetworkVpc",
        "MainNetworkInternetGateway",
        "MainNetworkPublicSubnetA",
        "MainNetworkPrivateSubnetB",
        "MainNetworkNatGatewayAzB",
    ]:
        assert title in topology.template.resources
    assert "MainNetworkVpcId" in topology.template.outputs
    assert topology.build_order() == ["MainNetwork"]


def test_network_single_nat(topology):
    network = topology.declare_network("main", "10.0.0.0/16", 3, single_nat=True)
    assert len(network.nat_gateways) == 1
    assert "MainNetworkNatGatewayAzB" not in topology.template.resources


def test_security_groups(topology):
    network = topology.declare_network("main", "10.0.0.0/16", 2)
    alb = topology.declare_security_group(
        "alb", network, ingress=[{"Cidr": "0.0.0.0/0", "Port": 443}]
    )
    app = topology.declare_security_group("app", network, allow_all_outbound=False)
    assert alb.admits_internet
    assert not app.admits_internet
    rule = topology.allow_ingress(app, alb, 8080)
    assert rule.dependencies == [app, alb]
    assert topology.build_order().index(rule.title) > topology.build_order().index(
        app.title
    )
    with raises(ConstraintViolation):
        topology.declare_security_group(
            "bad", network, ingress=[{"Cidr": "0.0.0.0/0", "Port": 80, "ToPort": 10}]
        )
    with raises(ConstraintViolation):
        topology.allow_ingress(app, alb, 70000)


def test_security_groups_cross_network(topology):
    network = topology.declare_network("main", "10.0.0.0/16", 2)
    other = topology.declare_network("other", "10.1.0.0/16", 2)
    app = topology.declare_security_group("app", network)
    db = topology.declare_security_group("db", other)
    resources_count = len(topology.template.resources)
    with raises(CrossNetworkReference):
        topology.allow_ingress(db, app, 5432)
    assert len(topology.template.resources) == resources_count
